"""Command-line entry point and renderers."""
