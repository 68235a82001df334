"""Command line interface for trustgate."""
