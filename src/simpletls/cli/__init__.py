"""Command-line interface for simpletls."""
