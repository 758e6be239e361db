"""Stored user data tables."""
