"""Pydantic models for offline tooling (run audit records)."""
