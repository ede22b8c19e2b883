"""
Environment-driven configuration for the billing service.
Designed to fail fast in production with clear error messages.
"""

import os
import warnings
from enum import Enum
from typing import Dict, Type
from urllib.parse import urlparse


class Environment(str, Enum):
    """Environment types"""
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


class ConfigurationError(Exception):
    """Raised when configuration validation fails"""
    pass


class BaseConfig:
    """
    Base configuration shared by all environments.

    Secrets are lazy-loaded properties so that the environment is read when
    the app factory builds the config, not at import time.
    """

    APP_NAME = os.getenv("APP_NAME", "LLM Boost Billing")
    APP_VERSION = os.getenv("APP_VERSION", "1.0.0")
    ENV = Environment.DEVELOPMENT.value
    ENVIRONMENT = ENV
    DEBUG = False
    TESTING = False

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    SENTRY_DSN = os.getenv("SENTRY_DSN")

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    JWT_TOKEN_LOCATION = ["headers"]
    JWT_HEADER_NAME = "Authorization"
    JWT_HEADER_TYPE = "Bearer"

    # ============================================
    # STRIPE
    # ============================================
    STRIPE_WEBHOOK_TOLERANCE = int(os.getenv("STRIPE_WEBHOOK_TOLERANCE", "300"))
    STRIPE_TIMEOUT = int(os.getenv("STRIPE_TIMEOUT", "30"))
    STRIPE_EVENT_LEDGER_TTL_HOURS = int(os.getenv("STRIPE_EVENT_LEDGER_TTL_HOURS", "72"))

    @property
    def SECRET_KEY(self):
        key = os.getenv("SECRET_KEY")
        if not key:
            if self.ENV == Environment.PRODUCTION:
                raise ConfigurationError("SECRET_KEY is required in production")
            warnings.warn("SECRET_KEY not set, using development fallback")
            return "dev-secret-key-change-immediately-in-production"
        return key

    @property
    def JWT_SECRET_KEY(self):
        return os.getenv("JWT_SECRET_KEY", self.SECRET_KEY)

    @property
    def SQLALCHEMY_DATABASE_URI(self):
        uri = os.getenv("DATABASE_URL")

        if not uri:
            if self.ENV == Environment.PRODUCTION:
                raise ConfigurationError("DATABASE_URL is required in production")
            uri = "sqlite:///llmboost_billing.db"

        # Heroku-style URLs are not accepted by SQLAlchemy 2
        if uri.startswith("postgres://"):
            uri = uri.replace("postgres://", "postgresql://", 1)

        if self.ENV == Environment.PRODUCTION and urlparse(uri).scheme == "sqlite":
            raise ConfigurationError("SQLite is not allowed in production. Use PostgreSQL.")

        return uri

    @property
    def STRIPE_SECRET_KEY(self):
        key = os.getenv("STRIPE_SECRET_KEY")

        if not key:
            if self.ENV == Environment.PRODUCTION:
                raise ConfigurationError("STRIPE_SECRET_KEY is required in production")
            return "sk_test_xxx"

        if self.ENV == Environment.PRODUCTION and key.startswith("sk_test"):
            raise ConfigurationError("Stripe test key detected in production!")

        return key

    @property
    def STRIPE_WEBHOOK_SECRET(self):
        secret = os.getenv("STRIPE_WEBHOOK_SECRET")

        if not secret and self.ENV == Environment.PRODUCTION:
            raise ConfigurationError("STRIPE_WEBHOOK_SECRET is required in production")

        return secret or ""

    @property
    def STRIPE_PRICE_STARTER(self):
        return self._price_id("STRIPE_PRICE_STARTER")

    @property
    def STRIPE_PRICE_PRO(self):
        return self._price_id("STRIPE_PRICE_PRO")

    @property
    def STRIPE_PRICE_AGENCY(self):
        return self._price_id("STRIPE_PRICE_AGENCY")

    def _price_id(self, name: str) -> str:
        value = os.getenv(name, "")
        if not value and self.ENV == Environment.PRODUCTION:
            raise ConfigurationError(f"{name} is required in production")
        return value


class DevelopmentConfig(BaseConfig):
    ENV = Environment.DEVELOPMENT.value
    ENVIRONMENT = ENV
    DEBUG = True
    CREATE_TABLES_ON_START = True


class TestingConfig(BaseConfig):
    ENV = Environment.TESTING.value
    ENVIRONMENT = ENV
    TESTING = True
    SECRET_KEY = "test-secret-key"
    JWT_SECRET_KEY = "test-jwt-secret-key-that-is-long-enough"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    STRIPE_SECRET_KEY = "sk_test_mock"
    STRIPE_WEBHOOK_SECRET = "whsec_test_secret"
    STRIPE_PRICE_STARTER = "price_starter"
    STRIPE_PRICE_PRO = "price_pro"
    STRIPE_PRICE_AGENCY = "price_agency"
    SENTRY_DSN = None


class ProductionConfig(BaseConfig):
    ENV = Environment.PRODUCTION.value
    ENVIRONMENT = ENV


CONFIGS: Dict[str, Type[BaseConfig]] = {
    Environment.DEVELOPMENT.value: DevelopmentConfig,
    Environment.TESTING.value: TestingConfig,
    Environment.PRODUCTION.value: ProductionConfig,
}


def get_config(name: str = None) -> BaseConfig:
    """Return a config instance for ``name`` (defaults to $FLASK_ENV)."""
    name = (name or os.getenv("FLASK_ENV", Environment.DEVELOPMENT.value)).lower()
    try:
        return CONFIGS[name]()
    except KeyError:
        raise ConfigurationError(f"Unknown configuration: {name}") from None
