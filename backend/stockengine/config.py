# backend/stockengine/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///stockengine.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Unit-of-work retry policy for lock/version conflicts
    INVENTORY_RETRY_ATTEMPTS = int(os.environ.get("INVENTORY_RETRY_ATTEMPTS", "3"))
    INVENTORY_RETRY_BACKOFF = float(os.environ.get("INVENTORY_RETRY_BACKOFF", "0.05"))

    # Tenant defaults; per-tenant rows in tenant_inventory_settings override these
    INVENTORY_ALLOW_NEGATIVE_STOCK = _env_bool("INVENTORY_ALLOW_NEGATIVE_STOCK", True)
    INVENTORY_ENFORCE_AVAILABLE_ON_SALE = _env_bool("INVENTORY_ENFORCE_AVAILABLE_ON_SALE", False)
    INVENTORY_LOW_STOCK_ALERTS = _env_bool("INVENTORY_LOW_STOCK_ALERTS", True)
