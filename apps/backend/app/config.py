"""
Application configuration read from the environment.

AppConfig.from_env() groups the settings by concern; required variables
that are missing raise ConfigError at startup rather than on first use.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from app.db_config import db_config

try:
    import psycopg2
except ImportError:
    psycopg2 = None

DEFAULT_API_HOST = "0.0.0.0"
DEFAULT_API_PORT = 4203
DEFAULT_STORAGE_URL = "https://s3.audetic.link/api/v1"
DEFAULT_STORAGE_TENANT = "arcata"
DEFAULT_AI_GATEWAY_URL = "https://api.vercel.ai/v1"
DEFAULT_AI_MODEL = "anthropic/claude-sonnet-4-20250514"


class ConfigError(Exception):
    pass


def _require(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ConfigError(f"Required environment variable '{name}' is not set")
    return value


def _flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def is_dev_mode() -> bool:
    return os.getenv("ARCATA_ENV", "").lower() == "dev"


@dataclass(frozen=True)
class ServerConfig:
    host: str = DEFAULT_API_HOST
    port: int = DEFAULT_API_PORT

    @classmethod
    def from_env(cls) -> "ServerConfig":
        port = os.getenv("API_PORT")
        try:
            return cls(host=os.getenv("API_HOST", DEFAULT_API_HOST), port=int(port) if port else DEFAULT_API_PORT)
        except ValueError:
            raise ConfigError(f"API_PORT must be an integer, got '{port}'")


@dataclass(frozen=True)
class DatabaseConfig:
    url: str

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        url = os.getenv("SUPABASE_DB_URL") or os.getenv("DATABASE_URL")
        if not url:
            raise ConfigError("Required environment variable 'SUPABASE_DB_URL' is not set")
        return cls(url=url)


@dataclass(frozen=True)
class AIConfig:
    api_key: str
    base_url: str = DEFAULT_AI_GATEWAY_URL
    model: str = DEFAULT_AI_MODEL
    config_learning: bool = True

    @classmethod
    def from_env(cls) -> "AIConfig":
        return cls(
            api_key=_require("VERCEL_AI_GATEWAY_API_KEY"),
            base_url=os.getenv("VERCEL_AI_GATEWAY_URL", DEFAULT_AI_GATEWAY_URL),
            model=os.getenv("AI_MODEL", DEFAULT_AI_MODEL),
            config_learning=_flag("EXTRACTION_CONFIG_LEARNING", True),
        )


@dataclass(frozen=True)
class StorageConfig:
    base_url: str = DEFAULT_STORAGE_URL
    tenant_id: str = DEFAULT_STORAGE_TENANT

    @classmethod
    def from_env(cls) -> "StorageConfig":
        return cls(
            base_url=os.getenv("OBJECT_STORAGE_URL", DEFAULT_STORAGE_URL),
            tenant_id=os.getenv("OBJECT_STORAGE_TENANT_ID", DEFAULT_STORAGE_TENANT),
        )


@dataclass(frozen=True)
class AuthConfig:
    jwt_secret: Optional[str] = None
    supabase_url: Optional[str] = None
    api_keys: List[str] = field(default_factory=list)

    @classmethod
    def from_env(cls) -> "AuthConfig":
        jwt_secret = os.getenv("SUPABASE_JWT_SECRET") or None
        supabase_url = os.getenv("SUPABASE_URL") or None
        if not jwt_secret and not supabase_url:
            raise ConfigError("Either SUPABASE_URL or SUPABASE_JWT_SECRET must be set to verify user tokens")
        keys = [k.strip() for k in os.getenv("API_KEYS", "").split(",") if k.strip()]
        return cls(jwt_secret=jwt_secret, supabase_url=supabase_url, api_keys=keys)


@dataclass(frozen=True)
class AppConfig:
    server: ServerConfig
    database: DatabaseConfig
    ai: AIConfig
    storage: StorageConfig
    auth: AuthConfig
    dev_mode: bool = False

    @classmethod
    def from_env(cls) -> "AppConfig":
        """
        Raises:
            ConfigError: if a required variable is missing or malformed
        """
        return cls(
            server=ServerConfig.from_env(),
            database=DatabaseConfig.from_env(),
            ai=AIConfig.from_env(),
            storage=StorageConfig.from_env(),
            auth=AuthConfig.from_env(),
            dev_mode=is_dev_mode(),
        )


class Capabilities:
    @staticmethod
    def is_db_enabled() -> bool:
        return db_config.is_db_enabled

    @staticmethod
    def check_db_connection() -> bool:
        """Verify database connection with a trivial query"""
        if not Capabilities.is_db_enabled() or not psycopg2:
            return False

        conn_params = db_config.get_connection_params()
        if not conn_params:
            return False

        try:
            # Health checks must answer fast
            conn = psycopg2.connect(**{**conn_params, "connect_timeout": 1})
            cursor = conn.cursor()
            cursor.execute("SELECT 1")
            cursor.fetchone()
            cursor.close()
            conn.close()
            return True
        except psycopg2.Error:
            return False

    @staticmethod
    def is_ai_enabled() -> bool:
        return bool(os.getenv("VERCEL_AI_GATEWAY_API_KEY"))

    @staticmethod
    def is_storage_enabled() -> bool:
        return bool(os.getenv("OBJECT_STORAGE_URL", DEFAULT_STORAGE_URL))

    @classmethod
    def get_status(cls) -> dict:
        db = cls.check_db_connection()
        ai = cls.is_ai_enabled()
        storage = cls.is_storage_enabled()

        return {
            "status": "green" if db and ai and storage else "amber",
            "components": {
                "db": db,
                "ai": ai,
                "storage": storage,
            },
        }


def get_env_presence() -> dict:
    names = [
        "ARCATA_ENV",
        "API_HOST",
        "API_PORT",
        "SUPABASE_DB_URL",
        "SUPABASE_URL",
        "SUPABASE_JWT_SECRET",
        "OBJECT_STORAGE_URL",
        "OBJECT_STORAGE_TENANT_ID",
        "VERCEL_AI_GATEWAY_API_KEY",
        "VERCEL_AI_GATEWAY_URL",
        "AI_MODEL",
        "API_KEYS",
        "EXTRACTION_CONFIG_LEARNING",
        "RATE_LIMIT_INGEST",
    ]
    return {name: bool(os.getenv(name)) for name in names}
