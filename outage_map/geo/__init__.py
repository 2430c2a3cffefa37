"""Outage data model, spatial clustering and geometry helpers (no Qt)."""
