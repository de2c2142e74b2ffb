"""
Database configuration module.
Direct PostgreSQL access to the Supabase database. SUPABASE_DB_URL is
preferred; DATABASE_URL is accepted as a fallback for local development.
"""

import os
import logging
from typing import Optional
from urllib.parse import urlparse, unquote

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_SECONDS = 5


def mask_db_url(url: str) -> str:
    """Render a connection URL with the password replaced by ***."""
    try:
        parsed = urlparse(url.replace('[', '').replace(']', ''))
    except ValueError:
        return "<unparseable>"
    if not parsed.hostname:
        return "<unparseable>"
    user = f"{parsed.username}:***@" if parsed.username else ""
    return f"{parsed.scheme}://{user}{parsed.hostname}:{parsed.port or 5432}{parsed.path}"


class DBConfig:
    """Database configuration read from the environment"""

    def __init__(self):
        self.supabase_db_url = os.getenv("SUPABASE_DB_URL")
        self.database_url = os.getenv("DATABASE_URL")
        self.db_url = self.supabase_db_url or self.database_url

        if self.db_url:
            source = "SUPABASE_DB_URL" if self.supabase_db_url else "DATABASE_URL"
            logger.info(f"[db_config] {source} configured: {mask_db_url(self.db_url)}")
        else:
            logger.warning("[db_config] SUPABASE_DB_URL not set - database connections will fail")

    @property
    def is_db_enabled(self) -> bool:
        return bool(self.db_url)

    def get_connection_params(self) -> Optional[dict]:
        """
        Connection parameters for psycopg2.connect().
        Returns dict with host, port, database, user, password, or None when
        no usable URL is configured.
        """
        if not self.db_url:
            return None

        # Tolerate URLs like postgresql://user:pass@[hostname]:port/db
        cleaned_url = self.db_url.replace('[', '').replace(']', '')
        try:
            parsed = urlparse(cleaned_url)
            port = parsed.port or 5432
        except ValueError as e:
            logger.error(f"[db_config] Failed to parse database URL: {e}")
            return None

        if not parsed.hostname:
            return None

        params = {
            "host": parsed.hostname,
            "port": port,
            "database": parsed.path.lstrip('/') or 'postgres',
            "user": unquote(parsed.username) if parsed.username else 'postgres',
            "connect_timeout": CONNECT_TIMEOUT_SECONDS,
        }
        if parsed.password:
            params["password"] = unquote(parsed.password)

        return params


# Global instance
db_config = DBConfig()
