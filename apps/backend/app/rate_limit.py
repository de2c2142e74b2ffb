"""
IP-based rate limiting for the ingest endpoint.
"""
import os
from slowapi import Limiter
from slowapi.util import get_remote_address

# Ingestion fetches a page and may call the AI gateway: keep it tight
RATE_LIMIT_INGEST = os.getenv("RATE_LIMIT_INGEST", "30/minute")

limiter = Limiter(key_func=get_remote_address)
