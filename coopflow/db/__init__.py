"""Persistence layer for coopflow."""
