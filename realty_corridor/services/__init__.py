"""Catalog services: listings, objects, duplicates, prices and corridors."""
