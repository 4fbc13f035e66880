"""
eventchain Test Suite
=====================

Test Organization
-----------------
- tests/unit/   : Fast in-memory tests, one module per component
- conftest.py   : Shared fixtures (bus, recorder, config restore)

Running
-------
    pytest                  # everything
    pytest -m chain         # dependency-chain behaviour only
"""
