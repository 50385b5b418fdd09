"""Command-line interface for placeops (Typer + rich)."""
