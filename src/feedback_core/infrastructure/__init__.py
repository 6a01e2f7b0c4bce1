"""Shared infrastructure: database engine and sessions."""
