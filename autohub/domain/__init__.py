"""Validation rules and constants that do not touch storage."""
