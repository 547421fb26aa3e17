"""Command line tools for pymbtcp."""
