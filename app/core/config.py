# Centralised application configuration
# (environment variables, constants, timeouts).

import os


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    APP_NAME = os.getenv("APP_NAME", "QR Scan Login")
    TICKET_TTL_SECONDS = int(os.getenv("TICKET_TTL_SECONDS", "120"))  # 2 Minutes
    # Empty path keeps tickets in memory only
    TICKET_STORE_PATH = os.getenv("TICKET_STORE_PATH", "tickets.json")
    FRONTEND_ORIGIN = os.getenv("FRONTEND_ORIGIN", "http://localhost:3000").rstrip("/")
    BIND_HOST = os.getenv("BIND_HOST", "0.0.0.0")
    BIND_PORT = int(os.getenv("BIND_PORT", "8099"))
    SNOWFLAKE_NODE_ID = int(os.getenv("SNOWFLAKE_NODE_ID", "1"))
    SWEEP_INTERVAL_SECONDS = int(os.getenv("SWEEP_INTERVAL_SECONDS", "60"))
    CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
    RATE_LIMIT_ENABLED = _env_bool("RATE_LIMIT_ENABLED", "false")
    MAX_REQUESTS_PER_MINUTE = int(os.getenv("MAX_REQUESTS_PER_MINUTE", "60"))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    EVENT_LOG_FILE = os.getenv("EVENT_LOG_FILE", "")

settings = Settings()
