# src/storage/__init__.py - v1
"""State directory layout and run manifests."""
