"""Session Assistant Package — guided slot-session planning and tracking.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)
"""
