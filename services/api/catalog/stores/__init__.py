"""Data stores for persistence and locking.

Stores handle:
- PostgreSQL: DB session, engine lifecycle, dialect helpers
- Redis: distributed locks for operational sweeps

No business/reconciliation logic in stores - that belongs in services.
"""
