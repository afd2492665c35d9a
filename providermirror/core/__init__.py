"""Core mirror logic: trust verification, catalog, quotas, package store and service."""
