from __future__ import annotations

import pytest
from pydantic import ValidationError

from albumcraft.config import AppConfig, load_config


def test_load_config_reads_prefixed_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ALBUMCRAFT_WORKER_COUNT", "6")
    monkeypatch.setenv("ALBUMCRAFT_STORAGE_BACKEND", "s3")
    monkeypatch.setenv("ALBUMCRAFT_S3_BUCKET", "photos")

    config = load_config()

    assert config.worker_count == 6
    assert config.storage_backend == "s3"
    assert config.s3_bucket == "photos"


def test_queue_url_falls_back_to_database_url() -> None:
    config = AppConfig(database_url="sqlite:///albums.db")

    assert config.effective_queue_url == "sqlite:///albums.db"
    assert AppConfig(queue_database_url="postgresql://q").effective_queue_url == "postgresql://q"


def test_worker_count_is_bounded() -> None:
    with pytest.raises(ValidationError):
        AppConfig(worker_count=0)
    with pytest.raises(ValidationError):
        AppConfig(worker_count=33)


def test_lease_and_variant_defaults() -> None:
    config = AppConfig()

    assert config.job_lease_seconds == 1800.0
    assert config.image_variants_enabled is True
    assert config.image_thumbnail_size == 300
    assert config.image_medium_long_edge == 2048
    with pytest.raises(ValidationError):
        AppConfig(job_lease_seconds=5)
