from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv
from pydantic import AnyHttpUrl, TypeAdapter, ValidationError

from auth.urls import origin_redirect_uri

from .constants import (
    DEFAULT_CREDENTIALS_PATH,
    DEFAULT_GATEWAY_ENDPOINT,
    DEFAULT_REDIRECT_URI,
    LOGGER,
)

_HTTP_URL = TypeAdapter(AnyHttpUrl)


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_env_int(key: str, default: int) -> int:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be an integer value.")


def _get_env_float(key: str, default: float) -> float:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be a numeric value.")


def _validate_http_url(key: str, value: str) -> str:
    try:
        _HTTP_URL.validate_python(value)
    except ValidationError as error:
        raise RuntimeError(
            f"{key} must be a valid http(s) URL (for example: https://www.shapediver.com)."
        ) from error
    return value.rstrip("/")


@dataclass
class Settings:
    client_id: str
    auth_base_url: str
    platform_url: str
    redirect_uri: str
    credentials_path: Path
    auto_login: bool
    default_endpoint: str
    api_timeout: float
    api_max_retries: int
    example_files_dir: Path
    download_dir: Path


def load_env(env_path: Path | None = None) -> None:
    env_path = env_path or Path(__file__).resolve().parent.parent / ".env"
    if not env_path.exists():
        return
    load_dotenv(env_path, override=True)


def validate_env() -> None:
    required = ("GW_OAUTH_CLIENT_ID", "GW_AUTH_BASE_URL")
    missing = [key for key in required if not os.getenv(key, "").strip()]
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

    _validate_http_url("GW_AUTH_BASE_URL", os.getenv("GW_AUTH_BASE_URL", "").strip())
    _validate_http_url("GW_REDIRECT_URI", os.getenv("GW_REDIRECT_URI", DEFAULT_REDIRECT_URI).strip())
    platform_url = os.getenv("GW_PLATFORM_URL", "").strip()
    if platform_url:
        _validate_http_url("GW_PLATFORM_URL", platform_url)


def load_settings() -> Settings:
    auth_base_url = os.getenv("GW_AUTH_BASE_URL", "").strip().rstrip("/")
    platform_url = os.getenv("GW_PLATFORM_URL", "").strip().rstrip("/") or auth_base_url
    return Settings(
        client_id=os.getenv("GW_OAUTH_CLIENT_ID", "").strip(),
        auth_base_url=auth_base_url,
        platform_url=platform_url,
        redirect_uri=origin_redirect_uri(os.getenv("GW_REDIRECT_URI", DEFAULT_REDIRECT_URI).strip()),
        credentials_path=Path(os.getenv("GW_CREDENTIALS_PATH", DEFAULT_CREDENTIALS_PATH)),
        auto_login=is_truthy(os.getenv("GW_AUTO_LOGIN", "1")),
        default_endpoint=os.getenv("GW_DEFAULT_ENDPOINT", DEFAULT_GATEWAY_ENDPOINT).strip(),
        api_timeout=_get_env_float("GW_API_TIMEOUT", 30.0),
        api_max_retries=_get_env_int("GW_API_MAX_RETRIES", 2),
        example_files_dir=Path(os.getenv("GW_EXAMPLE_FILES_DIR", "public")),
        download_dir=Path(os.getenv("GW_DOWNLOAD_DIR", "downloads")),
    )


def setup_logging() -> bool:
    debug_enabled = is_truthy(os.getenv("GW_DEBUG", "1"))
    if debug_enabled:
        logging.basicConfig(level=logging.INFO)
        LOGGER.setLevel(logging.INFO)
    return debug_enabled
