"""GeoTrove Map Core — marker lifecycle engine for location-anchored collectibles.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)

Design Decisions:
    - Empty __init__.py: explicit imports only, no star exports
"""
