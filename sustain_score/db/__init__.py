"""SQLite persistence: connection helper, schema and repositories."""
