# backend/nursery/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///nursery.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "8"))

    # EFTPOS terminal integration ("mock", "windcave", "verifone", "smartpay")
    EFTPOS_PROVIDER = os.environ.get("EFTPOS_PROVIDER", "mock")
    EFTPOS_TERMINAL_ID = os.environ.get("EFTPOS_TERMINAL_ID", "TERMINAL01")
    EFTPOS_MERCHANT_ID = os.environ.get("EFTPOS_MERCHANT_ID", "MERCHANT01")
    EFTPOS_API_KEY = os.environ.get("EFTPOS_API_KEY", "test-api-key")
    EFTPOS_API_URL = os.environ.get("EFTPOS_API_URL", "https://api.example.com/eftpos")
    EFTPOS_TIMEOUT = float(os.environ.get("EFTPOS_TIMEOUT", "60"))

    CURRENCY_CODE = os.environ.get("CURRENCY_CODE", "NZD")
    DEFAULT_TAX_RATE = float(os.environ.get("DEFAULT_TAX_RATE", "15"))
    DEFAULT_MINIMUM_STOCK = 5
    REGISTER_NUMBER = os.environ.get("REGISTER_NUMBER", "REG-01")

    CORS_ALLOWED_ORIGINS = {
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    }


class ProductionConfig(Config):
    # Must be provided by the environment in production
    SECRET_KEY = os.environ.get("SECRET_KEY")
    EFTPOS_PROVIDER = os.environ.get("EFTPOS_PROVIDER", "windcave")
    EFTPOS_TIMEOUT = float(os.environ.get("EFTPOS_TIMEOUT", "120"))


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    EFTPOS_PROVIDER = "mock"


CONFIG_BY_ENV = {
    "development": Config,
    "production": ProductionConfig,
    "testing": TestingConfig,
}


def get_config():
    return CONFIG_BY_ENV.get(os.environ.get("APP_ENV", "development"), Config)
