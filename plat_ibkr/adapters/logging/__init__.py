"""Event journal adapters."""
