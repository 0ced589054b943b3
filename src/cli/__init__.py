"""Command-line interface for chronos."""
