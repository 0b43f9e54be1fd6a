"""Subcommands of the simpletls CLI."""
