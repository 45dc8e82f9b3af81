"""Repository classes over the SQLite schema."""
