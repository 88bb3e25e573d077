"""Configuration for the building management API."""

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class Settings:
    """Runtime settings, read from environment variables."""

    database_url: Optional[str] = None
    database_name: Optional[str] = None
    firebase_service_account: Optional[Dict[str, Any]] = None
    stripe_secret_key: Optional[str] = None
    payment_currency: str = "usd"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    log_format: str = "standard"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables."""
        service_account = os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON")
        origins = os.getenv("CORS_ORIGINS", "*")

        return cls(
            database_url=os.getenv("DATABASE_URL"),
            database_name=os.getenv("DATABASE_NAME"),
            firebase_service_account=json.loads(service_account) if service_account else None,
            stripe_secret_key=os.getenv("STRIPE_SECRET_KEY"),
            payment_currency=os.getenv("PAYMENT_CURRENCY", "usd").lower(),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "standard"),
            port=int(os.getenv("PORT", "8000")),
        )
