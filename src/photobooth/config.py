"""Runtime configuration loaded from environment variables (and .env)."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

PROJECT_ROOT: Path = Path(__file__).parent.parent.parent

ALLOWED_ORIGINS: List[str] = [
    "https://photobooth.sogni.ai",
    "https://photobooth-staging.sogni.ai",
    "https://photobooth-local.sogni.ai",
    "http://localhost:5173",
    "http://localhost:3000",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:3000",
]


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """All settings the server needs. Build with `Settings.from_env()`."""

    host: str = "127.0.0.1"
    port: int = 3001
    sogni_env: str = "production"
    environment: str = "production"
    client_origin: str = "https://photobooth.sogni.ai"
    cookie_domain: str = ".sogni.ai"

    sogni_app_id: str = ""
    sogni_username: str = ""
    sogni_password: str = ""
    sogni_api_url: str = "https://api.sogni.ai"
    sogni_socket_url: str = "https://socket.sogni.ai"

    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db_index: int = 1
    redis_verbose_logging: bool = False

    admin_key: Optional[str] = None
    moderation_enabled: bool = True
    uploads_dir: Path = field(default_factory=lambda: Path("uploads"))
    static_dir_override: Optional[Path] = None
    log_level: str = "info"

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "Settings":
        """Read settings from the process environment, loading .env first."""
        load_dotenv(dotenv_path=env_file)

        environment = os.getenv("APP_ENV") or os.getenv("NODE_ENV", "production")
        default_cookie_domain = ".sogni.ai" if environment == "production" else "localhost"
        static_dir = os.getenv("STATIC_DIR")

        return cls(
            host=os.getenv("HOST", "127.0.0.1"),
            port=int(os.getenv("PORT", "3001")),
            sogni_env=os.getenv("SOGNI_ENV", "production"),
            environment=environment,
            client_origin=os.getenv("CLIENT_ORIGIN", "https://photobooth.sogni.ai"),
            cookie_domain=os.getenv("COOKIE_DOMAIN", default_cookie_domain),
            sogni_app_id=os.getenv("SOGNI_APP_ID", ""),
            sogni_username=os.getenv("SOGNI_USERNAME", ""),
            sogni_password=os.getenv("SOGNI_PASSWORD", ""),
            sogni_api_url=os.getenv("SOGNI_API_URL", "https://api.sogni.ai"),
            sogni_socket_url=os.getenv("SOGNI_SOCKET_URL", "https://socket.sogni.ai"),
            redis_host=os.getenv("REDIS_HOST", "localhost"),
            redis_port=int(os.getenv("REDIS_PORT", "6379")),
            redis_password=os.getenv("REDIS_PASSWORD") or None,
            redis_db_index=int(os.getenv("REDIS_DB_INDEX", "1")),
            redis_verbose_logging=_env_bool("REDIS_VERBOSE_LOGGING", False),
            admin_key=os.getenv("ADMIN_KEY") or None,
            moderation_enabled=os.getenv("MODERATION_ENABLED", "true") != "false",
            uploads_dir=Path(os.getenv("UPLOADS_DIR", "uploads")),
            static_dir_override=Path(static_dir) if static_dir else None,
            log_level=os.getenv("LOG_LEVEL", "info"),
        )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_local(self) -> bool:
        return (
            self.sogni_env == "local"
            or "local" in self.client_origin
            or not self.is_production
        )

    @property
    def is_staging(self) -> bool:
        return self.sogni_env == "staging" or "staging" in self.client_origin

    @property
    def static_dir(self) -> Path:
        """Directory holding the built SPA."""
        if self.static_dir_override is not None:
            return self.static_dir_override
        if self.is_local:
            return PROJECT_ROOT / "dist"
        if self.is_staging:
            return Path("/var/www/photobooth-staging.sogni.ai")
        return Path("/var/www/photobooth.sogni.ai")

    @property
    def api_base_url(self) -> str:
        """Public base URL of this API, derived from the client origin."""
        if "local" in self.client_origin:
            return "https://photobooth-api-local.sogni.ai"
        if "staging" in self.client_origin:
            return "https://photobooth-api-staging.sogni.ai"
        return "https://photobooth-api.sogni.ai"

    @property
    def redis_url(self) -> str:
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db_index}"

    @property
    def contest_dir(self) -> Path:
        return self.uploads_dir / "contest"

    @property
    def audio_temp_dir(self) -> Path:
        return self.uploads_dir / "audio-temp"


def is_allowed_origin(origin: Optional[str]) -> bool:
    """True for the known photobooth origins and any *.sogni.ai host."""
    if not origin:
        return True
    if origin in ALLOWED_ORIGINS:
        return True
    host = origin.split("://", 1)[-1].split(":", 1)[0]
    return host == "sogni.ai" or host.endswith(".sogni.ai")
