"""Distributed token-bucket rate limiting for FastAPI services."""
