"""Core Layer — pure domain logic, no IO, no async, no timers.

Invariants:
    - No module in core/ imports from services/, schemas/, or infrastructure/
    - Time enters core functions as explicit arguments (milliseconds)

Design Decisions:
    - Functional core separated from imperative shell: the shell owns the
      scheduler, the render surface, and every awaited call
"""
