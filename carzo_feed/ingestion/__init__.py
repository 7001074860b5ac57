"""Feed ingestion stages: extract, read, map, sync, orchestrate."""
