"""Infrastructure Layer — HTTP client, asyncio scheduler, and logging setup.

Invariants:
    - Implements boundary protocols from core/boundary_protocols.py
    - Maps third-party failures to GeoTroveError subclasses
"""
