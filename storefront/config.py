"""
Configuration management for the storefront cart/checkout core.
Loads settings from environment variables and AWS Secrets Manager.
"""
import os
import json
import logging
import boto3
from typing import Optional, Tuple

logger = logging.getLogger(__name__)


def _split_csv(value: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


class Config:
    """Application configuration"""

    # Application settings
    APP_PORT: int = int(os.getenv("APP_PORT", "8000"))
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "storefront")
    REGION: str = os.getenv("REGION", "ap-southeast-2")

    # Backend REST API (cart, orders, catalog)
    API_BASE_URL: str = os.getenv("API_BASE_URL", "http://localhost:8000")
    HTTP_TIMEOUT_SECONDS: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))

    # Redis settings
    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_AUTH_TOKEN: Optional[str] = os.getenv("REDIS_AUTH_TOKEN")
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))
    REDIS_USE_TLS: bool = os.getenv("REDIS_USE_TLS", "false").lower() == "true"

    # Cart settings
    CART_TTL_SECONDS: int = int(os.getenv("CART_TTL_SECONDS", str(7 * 24 * 60 * 60)))  # 7 days default
    MAX_ITEMS_PER_CART: int = int(os.getenv("MAX_ITEMS_PER_CART", "200"))
    BUY_NOW_TTL_SECONDS: int = int(os.getenv("BUY_NOW_TTL_SECONDS", str(60 * 60)))  # 1 hour
    PRODUCT_CACHE_TTL_SECONDS: float = float(os.getenv("PRODUCT_CACHE_TTL_SECONDS", "60"))

    # Checkout settings
    ENABLED_PAYMENT_METHODS: Tuple[str, ...] = _split_csv(os.getenv("ENABLED_PAYMENT_METHODS", "cash"))
    CARD_SUCCESS_RATE: float = float(os.getenv("CARD_SUCCESS_RATE", "0.8"))
    BANK_SUCCESS_RATE: float = float(os.getenv("BANK_SUCCESS_RATE", "0.9"))
    ORDER_NUMBER_PLACEHOLDER: str = os.getenv("ORDER_NUMBER_PLACEHOLDER", "IT-TEMP-ORDER")
    DEFAULT_COUNTRY: str = os.getenv("DEFAULT_COUNTRY", "Pakistan")
    PLATFORM_NAME: str = os.getenv("PLATFORM_NAME", "International Tijarat")

    # Redis connection settings
    REDIS_SOCKET_CONNECT_TIMEOUT: int = 5
    REDIS_SOCKET_TIMEOUT: int = 5
    REDIS_RETRY_ON_TIMEOUT: bool = True
    REDIS_MAX_CONNECTIONS: int = 50

    @classmethod
    def redis_url(cls) -> str:
        """Build the Redis connection URL"""
        scheme = "rediss" if cls.REDIS_USE_TLS else "redis"
        auth = f":{cls.REDIS_AUTH_TOKEN}@" if cls.REDIS_AUTH_TOKEN else ""
        return f"{scheme}://{auth}{cls.REDIS_HOST}:{cls.REDIS_PORT}/{cls.REDIS_DB}"

    @classmethod
    def load_redis_secrets(cls) -> None:
        """Load Redis authentication token from AWS Secrets Manager"""
        if cls.REDIS_AUTH_TOKEN:
            return  # Already loaded from environment

        secret_name = os.getenv("REDIS_SECRET_NAME")
        if not secret_name:
            return

        try:
            client = boto3.client("secretsmanager", region_name=cls.REGION)
            response = client.get_secret_value(SecretId=secret_name)
            secret_data = json.loads(response["SecretString"])

            cls.REDIS_AUTH_TOKEN = secret_data.get("auth_token")
            if "endpoint" in secret_data:
                cls.REDIS_HOST = secret_data["endpoint"]
        except Exception as e:
            # Continue without auth token (may fail on connection)
            logger.warning(f"Could not load Redis secrets from Secrets Manager: {e}")


# Load secrets at module import
Config.load_redis_secrets()
