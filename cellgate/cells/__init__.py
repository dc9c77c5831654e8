"""Cells reachable through the router.

A cell package may import from ``cellgate.core``, ``cellgate.gateway`` and
``cellgate.infrastructure`` but never from another cell package.
"""
