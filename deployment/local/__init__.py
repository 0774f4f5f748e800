"""Local Docker development workflow."""
