"""Database handle, dialect strategies, schema loading and CSV snapshots."""
