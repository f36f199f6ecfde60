"""Restore pipeline components."""
