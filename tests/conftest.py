"""Shared fixtures: a minimal valid config and a counting secret resolver."""

import pytest

from composer import ComposerConfig, compose
from composer.secrets import Credentials, Secret

PASSWORD = "s3cr3t-pa55w0rd"


class StaticResolver:
    """Returns fixed plaintext credentials and records every call."""

    def __init__(self, username: str = "admin", password: str = PASSWORD):
        self.username = username
        self.password = password
        self.calls = []

    def resolve(self, handle):
        self.calls.append(handle)
        return Credentials(username=Secret(self.username), password=Secret(self.password))


def make_config(**overrides) -> ComposerConfig:
    values = {
        "zone_id": "Z0123456789ABC",
        "zone_name": "example.com",
        "container_image": "registry.example.com/web:1.0",
        "health_check_path": "/foo/bar.html",
    }
    values.update(overrides)
    return ComposerConfig(**values)


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def resolver():
    return StaticResolver()


@pytest.fixture
def graph(config, resolver):
    return compose(config, resolver)
