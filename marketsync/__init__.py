"""Command-line interface package for marketsync."""
