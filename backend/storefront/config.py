# backend/storefront/config.py
from __future__ import annotations
import os


def _env_list(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///storefront.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Reverse proxies in front of the app; X-Forwarded-For is trusted for this many hops only
    TRUSTED_PROXY_COUNT = int(os.environ.get("TRUSTED_PROXY_COUNT", "0"))

    # Mercado Pago credentials; when the access token is missing the gateway
    # client refuses to build and checkout/fulfillment report GatewayUnavailable.
    MERCADOPAGO_ACCESS_TOKEN = os.environ.get("MERCADOPAGO_ACCESS_TOKEN")
    MERCADOPAGO_API_BASE = os.environ.get("MERCADOPAGO_API_BASE", "https://api.mercadopago.com")
    MERCADOPAGO_WEBHOOK_SECRET = os.environ.get("MERCADOPAGO_WEBHOOK_SECRET")
    MERCADOPAGO_INTEGRATOR_ID = os.environ.get("MERCADOPAGO_INTEGRATOR_ID")
    GATEWAY_TIMEOUT_SECONDS = float(os.environ.get("GATEWAY_TIMEOUT_SECONDS", "5"))

    PUBLIC_BASE_URL = os.environ.get("PUBLIC_BASE_URL", "http://localhost:3002")
    STORE_CURRENCY = os.environ.get("STORE_CURRENCY", "CLP")
    STATEMENT_DESCRIPTOR = os.environ.get("STATEMENT_DESCRIPTOR", "GA Company")
    MAX_INSTALLMENTS = int(os.environ.get("MAX_INSTALLMENTS", "6"))
    EXCLUDED_PAYMENT_TYPES = _env_list("EXCLUDED_PAYMENT_TYPES", "ticket,atm")

    CORS_ALLOWED_ORIGINS = set(_env_list(
        "CORS_ALLOWED_ORIGINS",
        "http://localhost:3000,http://localhost:3002,http://127.0.0.1:3002",
    ))

    # Default admin seeded by `flask system init`
    BOOTSTRAP_ADMIN_EMAIL = os.environ.get("BOOTSTRAP_ADMIN_EMAIL", "admin@lorcana.local")
