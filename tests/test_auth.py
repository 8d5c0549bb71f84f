"""
API key verification tests.
"""

import pytest

from taskhub.api import deps
from taskhub.config import Environment


@pytest.fixture
def secured(monkeypatch):
    monkeypatch.setattr(deps.settings, "allow_insecure_dev", False)
    monkeypatch.setattr(deps.settings, "api_key", "s3cret")


@pytest.mark.asyncio
async def test_dev_bypass_allows_anonymous(client):
    response = await client.get("/v1/health")

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_missing_key(client, secured):
    response = await client.get("/v1/health")

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_wrong_key(client, secured):
    response = await client.get("/v1/health", headers={"Authorization": "Bearer nope"})

    assert response.status_code == 401


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "headers",
    [{"Authorization": "Bearer s3cret"}, {"X-API-Key": "s3cret"}],
)
async def test_valid_key(client, secured, headers):
    response = await client.get("/v1/health", headers=headers)

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_unconfigured_key_fails_closed(client, monkeypatch):
    monkeypatch.setattr(deps.settings, "allow_insecure_dev", False)
    monkeypatch.setattr(deps.settings, "api_key", None)

    response = await client.get("/v1/health", headers={"X-API-Key": "anything"})

    assert response.status_code == 503


def test_insecure_dev_outside_development_refuses_to_start(monkeypatch):
    monkeypatch.setattr(deps.settings, "allow_insecure_dev", True)
    monkeypatch.setattr(deps.settings, "env", Environment.STAGING)

    with pytest.raises(RuntimeError, match="only permitted in development"):
        deps.validate_auth_config()
