"""Data stores for persistence and coordination.

Stores handle:
- PostgreSQL: engine, sessions, catalog repository
- Redis: job broker connection, distributed locks

No reconciliation logic in stores - that belongs in services.
"""
