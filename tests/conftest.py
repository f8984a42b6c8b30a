"""Pytest configuration for workspace_share tests.

``src`` is put on the import path by ``pythonpath`` in pyproject.toml.
"""
