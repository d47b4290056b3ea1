"""Consolidation stage implementations."""
