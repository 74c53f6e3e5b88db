"""Observability - logging configuration."""
