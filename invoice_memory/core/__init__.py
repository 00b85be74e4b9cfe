"""Persistence, domain types and confidence policy."""
