from __future__ import annotations

from urllib.parse import urlparse, urlunparse

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from contract import DEFAULT_NONCE_LIFETIME, DEFAULT_TOKEN_TTL

DEFAULT_SECRET = "change-me-in-production"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CHECKOUT_GATE_",
        env_file=".env",
        extra="ignore",
    )

    SECRET_KEY: str = DEFAULT_SECRET

    # canonical base URL; empty means "derive from the request"
    SITE_URL: str = ""

    GUARDED_PATH: str = "/checkout"
    CONFIRMATION_PATH: str = "/checkout/order-received"
    # server-side endpoints the checkout page polls; never serves the page
    ASYNC_PATH: str = "/checkout/ajax"
    VERIFY_PATH: str = "/checkout-gate/verify"
    SETTINGS_PATH: str = "/checkout-gate/settings"

    # bearer token for the settings API; empty disables the API
    ADMIN_TOKEN: str = ""

    COOKIE_PATH: str = "/"
    COOKIE_DOMAIN: str | None = None
    TOKEN_TTL: int = DEFAULT_TOKEN_TTL
    NONCE_LIFETIME: int = DEFAULT_NONCE_LIFETIME

    # JSON file for persisted settings; unset keeps them in memory
    STORE_PATH: str | None = None

    LOG_LEVEL: str = "INFO"

    @field_validator("SECRET_KEY")
    @classmethod
    def require_secret(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("SECRET_KEY cannot be empty")
        return v

    @field_validator("SITE_URL")
    @classmethod
    def normalize_site_url(cls, v: str) -> str:
        """
        Normalization:
          - strip whitespace and trailing slash
          - require http/https and a hostname
          - lowercase hostname, keep an explicit port
          - drop credentials, query and fragment; keep the path (sub-directory installs)
        """
        v = (v or "").strip().rstrip("/")
        if not v:
            return ""
        p = urlparse(v)

        if p.scheme not in ("http", "https"):
            raise ValueError("SITE_URL must start with http:// or https://")
        if not p.hostname:
            raise ValueError("SITE_URL must include a hostname")

        netloc = p.hostname.lower()
        if p.port:
            netloc = f"{netloc}:{p.port}"
        return urlunparse((p.scheme, netloc, p.path.rstrip("/"), "", "", ""))

    @field_validator("GUARDED_PATH", "CONFIRMATION_PATH", "ASYNC_PATH",
                     "VERIFY_PATH", "SETTINGS_PATH", "COOKIE_PATH")
    @classmethod
    def normalize_path(cls, v: str) -> str:
        v = "/" + (v or "").strip().strip("/")
        return v

    @field_validator("COOKIE_DOMAIN")
    @classmethod
    def normalize_cookie_domain(cls, v: str | None) -> str | None:
        v = (v or "").strip().lower()
        return v or None

    @field_validator("TOKEN_TTL", "NONCE_LIFETIME")
    @classmethod
    def positive_seconds(cls, v: int) -> int:
        if v < 2:
            raise ValueError("lifetimes must be at least 2 seconds")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return (v or "INFO").strip().upper()
