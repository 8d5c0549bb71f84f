"""
Settings validation tests.
"""

import pytest
from pydantic import ValidationError

from taskhub.config import Environment, QueueBackend, Settings


def make_settings(**overrides):
    fields = {"allow_insecure_dev": True, "_env_file": None}
    fields.update(overrides)
    return Settings(**fields)


def test_defaults():
    config = make_settings()

    assert config.queue_backend == QueueBackend.MEMORY
    assert config.queue_name == "task-processing"
    assert config.retry_attempts == 5
    assert config.retry_initial_delay_seconds == 1.0
    assert config.retry_backoff_factor == 2.0
    assert config.worker_concurrency == 5
    assert config.queue_dead_letter_limit == 100
    assert config.overdue_sweep_interval_seconds == 3600


@pytest.mark.parametrize(
    "url",
    ["postgresql+asyncpg://u:p@db/taskhub", "sqlite+aiosqlite:///./taskhub.db"],
)
def test_async_database_urls_accepted(url):
    assert make_settings(database_url=url).database_url == url


@pytest.mark.parametrize("url", ["postgresql://u:p@db/taskhub", "mysql://db/taskhub"])
def test_sync_database_urls_rejected(url):
    with pytest.raises(ValidationError, match="async driver"):
        make_settings(database_url=url)


@pytest.mark.parametrize("port", [0, 70000])
def test_port_range(port):
    with pytest.raises(ValidationError):
        make_settings(port=port)


def test_redis_url_scheme():
    assert make_settings(redis_url="rediss://cache:6380/0").redis_url == "rediss://cache:6380/0"
    with pytest.raises(ValidationError):
        make_settings(redis_url="http://cache:6379")


@pytest.mark.parametrize("field", ["retry_attempts", "queue_job_attempts", "worker_concurrency"])
def test_counts_must_be_positive(field):
    with pytest.raises(ValidationError):
        make_settings(**{field: 0})


def test_api_key_required_without_dev_bypass():
    with pytest.raises(ValidationError, match="api_key is required"):
        make_settings(allow_insecure_dev=False)

    assert make_settings(allow_insecure_dev=False, api_key="s3cret").api_key == "s3cret"


def test_api_key_required_in_production():
    with pytest.raises(ValidationError, match="production"):
        make_settings(env=Environment.PRODUCTION)
