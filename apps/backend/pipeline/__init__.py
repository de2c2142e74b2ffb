"""
Job ingestion pipeline.

Composable steps with values-as-errors, config-driven extraction with an AI
fallback that learns reusable rules, and background workflows for ATS
discovery and job status checks.
"""

__version__ = "1.0.0"
