"""Pipeline steps shared by the ingestion pipelines and workflows."""
