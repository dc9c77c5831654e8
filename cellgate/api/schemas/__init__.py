"""Pydantic schema models for API responses."""
