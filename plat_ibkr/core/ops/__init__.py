"""Operational events."""
