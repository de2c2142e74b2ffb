"""Config-driven job field extraction."""
