"""In-memory managers for the relay runtime.

Managers own their records and raise domain exceptions (``errors.py``),
never HTTP exceptions -- that translation is the router's responsibility.
"""
