# src/runtime/__init__.py - v1
"""Container engine drivers and embedded image templates."""
