from __future__ import annotations

import pytest

from config import Settings
from storage import ImageStorage

BASE_URL = "http://testserver"


@pytest.fixture(autouse=True)
def _log_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Offline settings: no credentials, no waits."""
    return Settings(
        uploads_dir=tmp_path / "uploads",
        public_base_url=BASE_URL,
        generation_attempts=2,
        retry_base_delay=0.0,
        retry_max_delay=0.0,
        attempt_timeout=5.0,
        poll_interval=0.0,
        launch_stagger=0.0,
    )


@pytest.fixture
def storage(settings) -> ImageStorage:
    return ImageStorage(settings.uploads_dir, settings.public_base_url)
