"""Command-line interface: autotrade."""
