"""
Idle Guild Test Suite
=====================

Test Organization
-----------------
- tests/unit/          : Pure engines and in-memory stores (no database)
- tests/integration/   : Services against a throwaway SQLite database (aiosqlite)
- tests/conftest.py    : Shared fixtures (database, event bus, services, factories)
"""
