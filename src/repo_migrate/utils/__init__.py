"""Logging and redaction utilities."""
