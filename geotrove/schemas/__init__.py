"""Pydantic Schemas — payload validation for Collectible Directory responses.

Invariants:
    - Schemas validate at the system boundary (directory payloads)
    - Coordinates are normalized by core/coordinates.py before reaching the domain
"""
