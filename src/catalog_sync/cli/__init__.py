"""Command-line interface for the catalog sync application."""
