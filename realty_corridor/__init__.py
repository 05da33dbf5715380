"""Listing consolidation and price corridor engine."""
