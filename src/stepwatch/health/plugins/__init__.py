"""Bundled step data sources."""
