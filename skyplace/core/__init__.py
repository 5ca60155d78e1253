"""
skyplace Core Package

Ingestion and aggregation: reply parsing, the deduplicated command log,
backfill + live firehose producers, and the deterministic canvas reducer.

Architecture Invariants:
- Command log is the single source of truth
- Field-wise commandId dedupe (backfill and live collapse to one entry)
- Single writer: producers submit, only the Ingest actor inserts
- Derived view recomputed from a snapshot on every read, never cached
"""
