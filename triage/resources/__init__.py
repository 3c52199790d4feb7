"""Lazy construction of per-run capabilities."""
