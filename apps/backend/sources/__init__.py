"""ATS job source connectors."""
