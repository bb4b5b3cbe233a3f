"""Shared helpers for the migration command-line scripts."""
