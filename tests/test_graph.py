"""Tests for the resource graph and the full composition pass"""

import pytest

from composer import (
    ConfigurationError,
    DependencyOrderError,
    HostedZone,
    Kind,
    ProvisionSpecError,
    ResourceGraph,
    SealedGraphError,
    compose,
)
from composer.descriptors import ObjectStore
from tests.conftest import StaticResolver, make_config

BUILD_ORDER = [
    "network",
    "database-boundary",
    "database",
    "cache-boundary",
    "cache",
    "cluster",
    "bucket",
    "certificate",
    "service-boundary",
    "service",
    "service-scaling",
    "web-acl",
    "distribution",
    "alias-example.com",
]


class TestResourceGraph:
    def test_rejects_missing_dependency(self):
        graph = ResourceGraph()
        with pytest.raises(DependencyOrderError, match="has not been built yet"):
            graph.add(ObjectStore(name="bucket", depends_on=("network",)))
        assert len(graph) == 0

    def test_rejects_duplicate_name(self):
        graph = ResourceGraph()
        graph.add(ObjectStore(name="bucket"))
        with pytest.raises(ProvisionSpecError, match="already exists"):
            graph.add(ObjectStore(name="bucket"))

    def test_rejects_self_reference(self):
        with pytest.raises(DependencyOrderError):
            ResourceGraph().add(ObjectStore(name="bucket", depends_on=("bucket",)))

    def test_sealed_graph_rejects_additions(self, graph):
        with pytest.raises(SealedGraphError):
            graph.add(ObjectStore(name="another-bucket"))

    def test_one_requires_exactly_one(self, graph):
        with pytest.raises(ProvisionSpecError, match="found 3"):
            graph.one(Kind.SECURITY_BOUNDARY)


class TestComposition:
    def test_build_order(self, graph):
        assert graph.build_order() == BUILD_ORDER

    def test_dependencies_precede_dependents(self, graph):
        position = {name: i for i, name in enumerate(graph.build_order())}
        assert graph.edges()
        for dependency, dependent in graph.edges():
            assert position[dependency] < position[dependent]

    def test_is_sealed(self, graph):
        assert graph.sealed
        assert all(b.rules.sealed for b in graph.boundaries())

    def test_boundary_rules_are_unique_and_owned(self, graph):
        for boundary in graph.boundaries():
            pairs = [(r.source, r.port) for r in boundary.rules]
            assert len(pairs) == len(set(pairs))
            for rule in boundary.rules:
                owner = graph[rule.granted_by]
                assert owner.kind is Kind.MANAGED_SERVICE
                assert boundary.name in owner.depends_on
                assert rule.source == owner.network_identity

    def test_no_new_rules_after_the_pass(self, graph):
        service = graph.one(Kind.MANAGED_SERVICE)
        with pytest.raises(SealedGraphError):
            graph["database-boundary"].admit(
                graph["service-boundary"], 22, requester=service
            )

    def test_singletons(self, graph):
        assert len(graph.of_kind(Kind.TLS_CERTIFICATE)) == 1
        assert len(graph.of_kind(Kind.WEB_FIREWALL_POLICY)) == 1

    def test_deterministic(self, config):
        first = compose(config, StaticResolver())
        second = compose(config, StaticResolver())
        assert first == second
        assert first.to_dict() == second.to_dict()

    def test_config_changes_change_the_graph(self, config):
        other = make_config(reader_count=2)
        assert compose(config, StaticResolver()) != compose(other, StaticResolver())

    def test_zone_must_match_config(self, config):
        with pytest.raises(ConfigurationError, match="does not match"):
            compose(config, StaticResolver(), zone=HostedZone("Z999", "example.org"))

    def test_explicit_zone(self, config):
        graph = compose(config, StaticResolver(), zone=HostedZone("Z0123456789ABC", "example.com"))
        assert graph.one(Kind.TLS_CERTIFICATE).zone_id == "Z0123456789ABC"

    def test_export_shape(self, graph):
        exported = graph.to_dict()
        assert [r["name"] for r in exported["resources"]] == BUILD_ORDER
        assert ["network", "database-boundary"] in exported["edges"]
        network = exported["resources"][0]
        assert network["kind"] == "network"
        assert network["subnets"][0]["tier"] == "public"


class TestScenarios:
    def test_single_writer_service_and_distribution(self):
        graph = compose(
            make_config(zone_name="example.com", min_tasks=1, max_tasks=3),
            StaticResolver(),
        )
        (database,) = graph.of_kind(Kind.RELATIONAL_CLUSTER)
        assert [i.role for i in database.instances].count("writer") == 1
        (service,) = graph.of_kind(Kind.MANAGED_SERVICE)
        (controller,) = graph.of_kind(Kind.SCALING_CONTROLLER)
        assert controller.service == service.name
        assert (controller.min_capacity, controller.max_capacity) == (1, 3)
        (distribution,) = graph.of_kind(Kind.EDGE_DISTRIBUTION)
        certificate = graph[distribution.certificate]
        assert certificate.domains == ("example.com", "*.example.com")
        assert all(certificate.covers(name) for name in distribution.domain_names)

    def test_writer_only(self):
        graph = compose(make_config(reader_count=0), StaticResolver())
        database = graph.one(Kind.RELATIONAL_CLUSTER)
        assert [i.role for i in database.instances] == ["writer"]
