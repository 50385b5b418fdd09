"""
Test support utilities for placeops tests.

Fakes that stand in for the interactive shell and the remote place
directory live here so test modules can import them directly; the
fixtures that wire them up stay in ``tests/conftest.py``.
"""
