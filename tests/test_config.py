"""Tests for render_pipeline/config.py.

This module tests:
- Environment variable loading functions
- Default value handling
- Clamping and fallback for invalid numeric values
"""

from pathlib import Path

import pytest

from render_pipeline.config import (
    DEFAULT_RECONNECT_DELAY,
    DEFAULT_TRANSCODE_TIMEOUT,
    get_database_url,
    get_overlay_text,
    get_rabbitmq_url,
    get_reconnect_delay,
    get_render_queue_name,
    get_s3_endpoint_url,
    get_temp_dir,
    get_transcode_timeout,
)
from render_pipeline.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def clear_database_url_cache():
    get_database_url.cache_clear()
    yield
    get_database_url.cache_clear()


class TestGetDatabaseUrl:
    def test_converts_to_asyncpg(self, monkeypatch: pytest.MonkeyPatch):
        # GIVEN: A plain PostgreSQL URL
        monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db:5432/render")

        # WHEN: Reading the database URL
        result = get_database_url()

        # THEN: The asyncpg driver is selected
        assert result == "postgresql+asyncpg://u:p@db:5432/render"

    def test_keeps_explicit_driver(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///render.db")

        assert get_database_url() == "sqlite+aiosqlite:///render.db"

    def test_missing_raises(self, monkeypatch: pytest.MonkeyPatch):
        # GIVEN: DATABASE_URL is not set
        monkeypatch.delenv("DATABASE_URL", raising=False)

        # WHEN/THEN: ConfigurationError is raised
        with pytest.raises(ConfigurationError, match="DATABASE_URL"):
            get_database_url()


class TestBrokerSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("RABBITMQ_URL", raising=False)
        monkeypatch.delenv("RENDER_QUEUE_NAME", raising=False)
        monkeypatch.delenv("BROKER_RECONNECT_DELAY_SECONDS", raising=False)

        assert get_rabbitmq_url() == "amqp://localhost"
        assert get_render_queue_name() == "render_jobs"
        assert get_reconnect_delay() == DEFAULT_RECONNECT_DELAY

    def test_reconnect_delay_from_env(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("BROKER_RECONNECT_DELAY_SECONDS", "2.5")

        assert get_reconnect_delay() == 2.5

    @pytest.mark.parametrize("raw", ["abc", "0", "-3"])
    def test_invalid_reconnect_delay_uses_default(self, monkeypatch: pytest.MonkeyPatch, raw):
        monkeypatch.setenv("BROKER_RECONNECT_DELAY_SECONDS", raw)

        assert get_reconnect_delay() == DEFAULT_RECONNECT_DELAY


class TestTranscodeTimeout:
    def test_default(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("RENDER_TRANSCODE_TIMEOUT_SECONDS", raising=False)

        assert get_transcode_timeout() == DEFAULT_TRANSCODE_TIMEOUT

    def test_default_fits_within_broker_consumer_timeout(self, monkeypatch: pytest.MonkeyPatch):
        # GIVEN: No override and RabbitMQ's default consumer_timeout (30 minutes)
        monkeypatch.delenv("RENDER_TRANSCODE_TIMEOUT_SECONDS", raising=False)
        rabbitmq_consumer_timeout = 30 * 60

        # WHEN: The transcode budget is read
        timeout = get_transcode_timeout()

        # THEN: A full-length transcode still leaves time to upload and ack
        assert timeout == 1200
        assert timeout < rabbitmq_consumer_timeout

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("120", 120), ("1", 10), ("999999", 86400), ("not-a-number", DEFAULT_TRANSCODE_TIMEOUT)],
    )
    def test_clamped_and_validated(self, monkeypatch: pytest.MonkeyPatch, raw, expected):
        monkeypatch.setenv("RENDER_TRANSCODE_TIMEOUT_SECONDS", raw)

        assert get_transcode_timeout() == expected


class TestOptionalSettings:
    def test_empty_values_mean_unset(self, monkeypatch: pytest.MonkeyPatch):
        # GIVEN: Optional variables set to empty strings
        monkeypatch.setenv("AWS_S3_ENDPOINT_URL", "")
        monkeypatch.setenv("RENDER_OVERLAY_TEXT", "")

        # THEN: They read as None
        assert get_s3_endpoint_url() is None
        assert get_overlay_text() is None

    def test_temp_dir_from_env(self, monkeypatch: pytest.MonkeyPatch, tmp_path):
        monkeypatch.setenv("RENDER_TEMP_DIR", str(tmp_path / "scratch"))

        assert get_temp_dir() == Path(tmp_path / "scratch")

    def test_temp_dir_default(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("RENDER_TEMP_DIR", raising=False)

        assert get_temp_dir() == Path.cwd() / "temp"
