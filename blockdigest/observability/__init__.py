"""Logging for blockdigest processes."""
