"""Command-line interface for revgate."""
