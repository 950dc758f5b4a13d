"""Command-line interface for codestream."""
