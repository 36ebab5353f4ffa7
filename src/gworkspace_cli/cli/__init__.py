"""Command-line interface for gws."""
