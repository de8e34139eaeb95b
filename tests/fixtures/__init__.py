"""Reusable test fixtures and test doubles."""
