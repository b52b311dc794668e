"""CLI entry points for theory content generation."""
