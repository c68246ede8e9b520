"""Tests for the managed service builder and credential handling"""

import json
import logging

import pytest

from composer import (
    AttributeRef,
    DependencyOrderError,
    Kind,
    ManagedSecretResolver,
    ResourceGraph,
    compose,
)
from composer.builders import (
    OBJECT_STORE_READ_WRITE,
    build_cache_cluster,
    build_certificate,
    build_compute_cluster,
    build_managed_service,
    build_network,
    build_object_store,
    build_relational_cluster,
)
from composer.descriptors import HostedZone, IngressRule
from composer.secrets import CredentialHandle, OncePerPassResolver, SecretKeyRef
from tests.conftest import PASSWORD, StaticResolver, make_config


class TestEnvironment:
    def test_plain_bindings(self, graph):
        service = graph.one(Kind.MANAGED_SERVICE)
        assert dict(service.environment) == {
            "DB_HOST": AttributeRef("database", "endpoint"),
            "DB_NAME": "wordpress",
            "CACHE_HOST": AttributeRef("cache", "endpoint"),
        }

    def test_credentials_only_in_private_bindings(self, graph):
        service = graph.one(Kind.MANAGED_SERVICE)
        secrets = dict(service.secrets)
        assert set(secrets) == {"DB_USER", "DB_PASSWORD"}
        assert secrets["DB_USER"].reveal() == "admin"
        assert secrets["DB_PASSWORD"].reveal() == PASSWORD
        assert PASSWORD not in [value for _, value in service.environment]

    def test_resolver_called_once_per_pass(self, config):
        resolver = StaticResolver()
        compose(config, resolver)
        assert resolver.calls == [CredentialHandle("database", "database-credentials")]

    def test_managed_resolver_keeps_references(self, config):
        graph = compose(config, ManagedSecretResolver())
        secrets = dict(graph.one(Kind.MANAGED_SERVICE).secrets)
        handle = CredentialHandle("database", "database-credentials")
        assert secrets["DB_USER"].reveal() == SecretKeyRef(handle, "username")
        assert secrets["DB_PASSWORD"].reveal() == SecretKeyRef(handle, "password")


class TestSecretsNeverLeak:
    def test_repr_is_masked(self, graph):
        assert PASSWORD not in repr(graph.one(Kind.MANAGED_SERVICE))

    def test_export_is_redacted(self, graph):
        exported = json.dumps(graph.to_dict())
        assert PASSWORD not in exported
        service = next(r for r in graph.to_dict()["resources"] if r["name"] == "service")
        assert service["secrets"] == [["DB_USER", "**********"], ["DB_PASSWORD", "**********"]]

    def test_not_logged(self, config, caplog):
        with caplog.at_level(logging.DEBUG, logger="composer"):
            compose(config, StaticResolver())
        assert caplog.records
        assert PASSWORD not in caplog.text


class TestOncePerPassResolver:
    def test_memoizes_by_handle(self):
        inner = StaticResolver()
        resolver = OncePerPassResolver(inner)
        handle = CredentialHandle("database", "database-credentials")
        first = resolver.resolve(handle)
        assert resolver.resolve(handle) is first
        assert len(inner.calls) == 1


class TestWiring:
    def test_back_wires_data_tier_ingress(self, graph):
        assert list(graph["database-boundary"].rules) == [
            IngressRule(source="service-boundary", port=3306, granted_by="service")
        ]
        assert list(graph["cache-boundary"].rules) == [
            IngressRule(source="service-boundary", port=6379, granted_by="service")
        ]

    def test_service_boundary_has_no_ingress_rules(self, graph):
        assert len(graph["service-boundary"].rules) == 0

    def test_single_public_endpoint(self, graph):
        endpoint = graph.one(Kind.MANAGED_SERVICE).endpoint
        assert endpoint.public is True
        assert endpoint.protocol == "HTTPS"
        assert endpoint.listener_port == 443
        assert endpoint.target_port == 80
        assert endpoint.certificate == "certificate"
        assert endpoint.health_check.path == "/foo/bar.html"

    def test_grants_read_write_on_bucket(self, graph):
        (grant,) = graph.one(Kind.MANAGED_SERVICE).grants
        assert grant.bucket == "bucket"
        assert grant.actions == OBJECT_STORE_READ_WRITE

    def test_task_sizing(self, graph):
        service = graph.one(Kind.MANAGED_SERVICE)
        assert (service.cpu, service.memory, service.desired_count) == (256, 1024, 2)
        assert service.image == "registry.example.com/web:1.0"


class TestScaling:
    def test_controller_bound_to_service(self, graph):
        (controller,) = graph.of_kind(Kind.SCALING_CONTROLLER)
        assert controller.service == "service"
        assert controller.depends_on == ("service",)
        assert (controller.min_capacity, controller.max_capacity) == (1, 3)

    def test_two_target_policies(self, graph):
        controller = graph.one(Kind.SCALING_CONTROLLER)
        assert [(p.metric, p.target_value) for p in controller.policies] == [
            ("cpu_utilization", 50.0),
            ("requests_per_target", 10000.0),
        ]

    def test_bounds_follow_config(self):
        graph = compose(
            make_config(min_tasks=2, desired_tasks=4, max_tasks=8, cpu_target=70),
            StaticResolver(),
        )
        controller = graph.one(Kind.SCALING_CONTROLLER)
        assert (controller.min_capacity, controller.max_capacity) == (2, 8)
        assert controller.policies[0].target_value == 70.0


class TestDependencyOrder:
    def setup_method(self):
        self.config = make_config()
        self.graph = ResourceGraph()
        self.network = build_network(self.graph, self.config)
        self.cache = build_cache_cluster(self.graph, self.network, self.config)
        self.cluster = build_compute_cluster(self.graph, self.network)
        self.bucket = build_object_store(self.graph)
        self.certificate = build_certificate(
            self.graph, HostedZone("Z0123456789ABC", "example.com")
        )
        self.resolver = StaticResolver()

    def _build(self, database):
        return build_managed_service(
            self.graph,
            self.config,
            network=self.network,
            cluster=self.cluster,
            database=database,
            cache=self.cache,
            certificate=self.certificate,
            bucket=self.bucket,
            resolver=self.resolver,
        )

    def test_missing_database_is_rejected(self):
        with pytest.raises(DependencyOrderError, match="relational_cluster"):
            self._build(None)
        assert self.resolver.calls == []
        assert "service" not in self.graph

    def test_database_from_another_graph_is_rejected(self):
        other = ResourceGraph()
        foreign = build_relational_cluster(
            other, build_network(other, self.config), self.config
        )
        with pytest.raises(DependencyOrderError):
            self._build(foreign)

    def test_wrong_kind_is_rejected(self):
        with pytest.raises(DependencyOrderError, match="got cache_cluster"):
            self._build(self.cache)

    def test_builds_once_database_exists(self):
        database = build_relational_cluster(self.graph, self.network, self.config)
        service, scaling = self._build(database)
        assert service.name in self.graph
        assert scaling.service == service.name
