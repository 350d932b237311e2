"""Runtime settings, read once from the environment.

Call ``load_dotenv()`` before ``Settings.from_env()`` (app.py and
brand_cli.py both do).  Components receive a Settings instance explicitly
rather than reading os.environ themselves.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import List

BASE_DIR = Path(__file__).parent

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "https://cluely-for-brands.vercel.app",
    "https://cluely-for-brands-git-main.vercel.app",
    r"^https://cluely-for-brands.*\.vercel\.app$",
]

DEFAULT_TEXT_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-sonnet-4-5",
}


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    return int(raw) if raw else default


@dataclass(frozen=True)
class Settings:
    # Credentials
    replicate_api_token: str = ""
    openai_api_key: str = ""
    anthropic_api_key: str = ""

    # Models
    text_provider: str = "openai"
    text_model: str = DEFAULT_TEXT_MODELS["openai"]
    image_model: str = "google/nano-banana"

    # Serving
    port: int = 3001
    public_base_url: str = "http://localhost:3001"
    cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    uploads_dir: Path = BASE_DIR / "uploads"
    max_upload_bytes: int = 10 * 1024 * 1024
    max_upload_files: int = 5

    # Retry / polling
    generation_attempts: int = 3
    retry_base_delay: float = 2.0
    retry_backoff: float = 1.5
    retry_max_delay: float = 10.0
    attempt_timeout: float = 120.0
    poll_interval: float = 1.0
    max_polls: int = 90

    # Orchestration
    launch_stagger: float = 0.5
    backfill_rounds: int = 1
    placeholder_on_failure: bool = False
    probe_provider: bool = False

    http_user_agent: str = "cluely-brands/1.0"

    @classmethod
    def from_env(cls) -> "Settings":
        port = _env_int("PORT", 3001)
        provider = os.environ.get("TEXT_PROVIDER", "openai").strip().lower() or "openai"
        origins_raw = os.environ.get("CORS_ORIGINS", "").strip()
        origins = (
            [o.strip() for o in origins_raw.split(",") if o.strip()]
            if origins_raw
            else list(DEFAULT_CORS_ORIGINS)
        )
        return cls(
            replicate_api_token=os.environ.get("REPLICATE_API_TOKEN", ""),
            openai_api_key=os.environ.get("OPENAI_API_KEY", ""),
            anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY", ""),
            text_provider=provider,
            text_model=os.environ.get("TEXT_MODEL") or DEFAULT_TEXT_MODELS.get(provider, "gpt-4o-mini"),
            image_model=os.environ.get("REPLICATE_IMAGE_MODEL") or cls.image_model,
            port=port,
            public_base_url=(os.environ.get("BACKEND_URL") or f"http://localhost:{port}").rstrip("/"),
            cors_origins=origins,
            uploads_dir=Path(os.environ.get("UPLOADS_DIR") or BASE_DIR / "uploads"),
            max_upload_bytes=_env_int("MAX_UPLOAD_MB", 10) * 1024 * 1024,
            generation_attempts=max(1, _env_int("GENERATION_ATTEMPTS", 3)),
            retry_base_delay=_env_float("RETRY_BASE_DELAY", 2.0),
            retry_backoff=_env_float("RETRY_BACKOFF", 1.5),
            retry_max_delay=_env_float("RETRY_MAX_DELAY", 10.0),
            attempt_timeout=_env_float("ATTEMPT_TIMEOUT", 120.0),
            poll_interval=_env_float("POLL_INTERVAL", 1.0),
            max_polls=max(1, _env_int("MAX_POLLS", 90)),
            launch_stagger=_env_float("LAUNCH_STAGGER", 0.5),
            backfill_rounds=max(0, _env_int("BACKFILL_ROUNDS", 1)),
            placeholder_on_failure=_env_bool("PLACEHOLDER_ON_FAILURE"),
            probe_provider=_env_bool("PROBE_PROVIDER"),
            http_user_agent=os.environ.get("HTTP_USER_AGENT") or cls.http_user_agent,
        )

    @property
    def text_api_key(self) -> str:
        if self.text_provider == "anthropic":
            return self.anthropic_api_key
        return self.openai_api_key

    @property
    def replicate_configured(self) -> bool:
        return bool(self.replicate_api_token)

    def with_overrides(self, **changes) -> "Settings":
        return replace(self, **changes)

    def public_flags(self) -> dict:
        """Configuration summary that is safe to expose (no secrets)."""
        return {
            "replicate": "configured" if self.replicate_api_token else "missing",
            "text_provider": self.text_provider,
            "text_model": self.text_model,
            "llm": "configured" if self.text_api_key else "missing (mock responses)",
            "image_model": self.image_model,
            "placeholder_on_failure": self.placeholder_on_failure,
            "probe_provider": self.probe_provider,
            "backfill_rounds": self.backfill_rounds,
            "port": self.port,
        }
