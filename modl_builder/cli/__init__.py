"""Command-line entry points. Not imported by the package facade."""
