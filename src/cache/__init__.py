# src/cache/__init__.py - v1
"""Environment fingerprinting and cache volume management."""
