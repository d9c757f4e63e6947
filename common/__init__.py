"""Shared types, logging and small utilities."""
