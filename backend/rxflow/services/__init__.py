"""Rxflow services."""
