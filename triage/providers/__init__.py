"""Capability clients: contracts plus the REST/AWS implementations."""
