"""Maintenance scripts (run directly with python scripts/<name>.py)."""
