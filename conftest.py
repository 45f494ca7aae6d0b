"""Root-level pytest fixtures: a Redis instance for integration tests.

``STORE_REDIS_URL`` points the tests at an existing Redis (CI service,
devcontainer); otherwise a throwaway testcontainers Redis is started once
per session.
"""

from __future__ import annotations

import os

import pytest


@pytest.fixture(scope="session")
def redis_url():
    """Connection URL of the Redis used by integration tests."""
    url = os.environ.get("STORE_REDIS_URL")
    if url:
        yield url
        return

    from testcontainers.redis import RedisContainer

    with RedisContainer("redis:7-alpine") as container:
        host = container.get_container_host_ip()
        port = container.get_exposed_port(6379)
        yield f"redis://{host}:{port}/0"
