"""Services Layer — imperative shell around the pure core.

Invariants:
    - Services are the only writers to the marker registry and render surface
    - Every timer is created through the injected Scheduler
"""
