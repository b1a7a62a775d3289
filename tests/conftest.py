"""Shared fixtures for plugin_authz tests."""

import copy

import pytest

from plugin_authz.audit.sinks import InMemoryAuditSink
from plugin_authz.bootstrap import build_permission_service
from plugin_authz.config.schema import AuthzConfig
from plugin_authz.data.repos.permissions import InMemoryPermissionRepository


_NETWORK_RULE = {
    "type": "network",
    "actions": ["request"],
    "target": {
        "hosts": ["*.example.com"],
        "methods": ["GET"],
        "schemes": ["https"],
        "paths": ["/**"],
    },
}


@pytest.fixture
def repository():
    return InMemoryPermissionRepository()


@pytest.fixture
def audit_sink():
    return InMemoryAuditSink()


@pytest.fixture
def config():
    config = AuthzConfig()
    config.codec.groups = {"json": ["json_encode", "json_decode"]}
    return config


@pytest.fixture
def service(config, repository, audit_sink):
    return build_permission_service(config=config, repository=repository, audit_sink=audit_sink)


@pytest.fixture
def network_rule():
    """GET https://*.example.com/**"""
    return copy.deepcopy(_NETWORK_RULE)
