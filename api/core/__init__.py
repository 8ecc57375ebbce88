"""
Shared, cross-cutting code for the service.

`core/` holds the small building blocks both features use (settings,
logging, the DB pool, the mempool.space client). Node-specific SQL and sync
logic live in `ingestion/` and `nodes/`.
"""
