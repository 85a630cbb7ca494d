"""Core domain packages."""
