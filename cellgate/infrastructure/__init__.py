"""Shared infrastructure: the relational store and the configuration cache."""
