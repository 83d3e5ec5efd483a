"""Shared libraries used by features."""
