"""Persistent filename index: storage, traversal and reconciliation."""
