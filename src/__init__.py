# src/__init__.py - v1
"""podci: local-first CI runner executing declared steps inside containers."""
