"""Shared utilities: logging setup and UTC time helpers."""
