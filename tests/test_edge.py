"""Tests for the certificate, firewall, edge distribution and DNS builders"""

import pytest

from composer import Kind, PolicyConflictError, ProvisionSpecError, ResourceGraph, compose
from composer.builders import (
    ALL_METHODS,
    build_certificate,
    build_edge_distribution,
    build_web_firewall_policy,
    managed_rules,
)
from composer.descriptors import HostedZone, ManagedRule, TlsCertificate, WebFirewallPolicy
from tests.conftest import StaticResolver, make_config

ZONE = HostedZone("Z0123456789ABC", "example.com")


class TestCertificate:
    def setup_method(self):
        self.certificate = build_certificate(ResourceGraph(), ZONE)

    def test_apex_and_wildcard(self):
        assert self.certificate.domains == ("example.com", "*.example.com")
        assert self.certificate.zone_id == "Z0123456789ABC"
        assert self.certificate.validation_method == "DNS"

    def test_apex_and_wildcard_share_validation(self):
        assert self.certificate.validation_domains == ("example.com",)

    @pytest.mark.parametrize("name", ["example.com", "www.example.com", "API.example.com."])
    def test_covers(self, name):
        assert self.certificate.covers(name)

    @pytest.mark.parametrize("name", ["example.org", "a.b.example.com", "notexample.com"])
    def test_does_not_cover(self, name):
        assert not self.certificate.covers(name)

    def test_only_one_per_deployment(self):
        graph = ResourceGraph()
        build_certificate(graph, ZONE)
        with pytest.raises(ProvisionSpecError, match="only one tls_certificate"):
            graph.add(
                TlsCertificate(
                    name="second-certificate",
                    domain_name="example.org",
                    subject_alternative_names=("*.example.org",),
                    zone_id="Z2",
                )
            )
        assert [c.name for c in graph.of_kind(Kind.TLS_CERTIFICATE)] == ["certificate"]


class TestWebFirewallPolicy:
    def test_default_rule_groups(self, graph):
        policy = graph.one(Kind.WEB_FIREWALL_POLICY)
        assert policy.default_action == "allow"
        assert policy.scope == "CLOUDFRONT"
        assert [(r.name, r.priority) for r in policy.rules] == [
            ("AWSManagedRulesCommonRuleSet", 2),
            ("AWSManagedRulesPHPRuleSet", 3),
            ("AWSManagedRulesWordPressRuleSet", 4),
            ("AWSManagedRulesSQLiRuleSet", 5),
        ]

    def test_metric_names_derive_from_rule_names(self, graph):
        policy = graph.one(Kind.WEB_FIREWALL_POLICY)
        assert policy.rules[0].metric_name == "AWSManagedRulesCommonRuleSetMetric"
        assert len({r.metric_name for r in policy.rules}) == len(policy.rules)

    def test_rules_override_nothing(self, graph):
        policy = graph.one(Kind.WEB_FIREWALL_POLICY)
        assert {(r.vendor, r.override_action) for r in policy.rules} == {("AWS", "none")}

    def test_duplicate_priority_conflicts(self):
        graph = ResourceGraph()
        with pytest.raises(PolicyConflictError, match="share priority"):
            build_web_firewall_policy(graph, [ManagedRule("A", 2), ManagedRule("B", 2)])
        assert len(graph) == 0

    def test_out_of_order_priority_conflicts(self):
        with pytest.raises(PolicyConflictError, match="out of priority order"):
            build_web_firewall_policy(
                ResourceGraph(), [ManagedRule("A", 3), ManagedRule("B", 2)]
            )

    def test_duplicate_metric_conflicts(self):
        with pytest.raises(PolicyConflictError, match="metric name"):
            build_web_firewall_policy(
                ResourceGraph(), [ManagedRule("A", 1), ManagedRule("A", 2)]
            )

    def test_managed_rules_numbering(self):
        assert [r.priority for r in managed_rules(["a", "b", "c"], 10)] == [10, 11, 12]

    def test_only_one_per_deployment(self):
        graph = ResourceGraph()
        build_web_firewall_policy(graph, managed_rules(["A"], 1))
        with pytest.raises(ProvisionSpecError, match="only one web_firewall_policy"):
            graph.add(
                WebFirewallPolicy(
                    name="second-web-acl",
                    scope="CLOUDFRONT",
                    default_action="allow",
                    rules=(),
                    metric_name="SecondWebAcl",
                )
            )
        assert len(graph.of_kind(Kind.WEB_FIREWALL_POLICY)) == 1


class TestEdgeDistribution:
    def test_origin_and_viewer_policies(self, graph):
        distribution = graph.one(Kind.EDGE_DISTRIBUTION)
        assert distribution.origin == "service"
        assert str(distribution.origin_hostname) == "${service.load_balancer_dns}"
        assert distribution.origin_protocol_policy == "https-only"
        assert (distribution.origin_http_port, distribution.origin_https_port) == (80, 443)
        assert distribution.viewer_protocol_policy == "redirect-to-https"
        assert distribution.allowed_methods == ALL_METHODS
        assert distribution.cached_methods == ("GET", "HEAD", "OPTIONS")

    def test_one_certificate_and_one_policy(self, graph):
        distribution = graph.one(Kind.EDGE_DISTRIBUTION)
        assert distribution.certificate == "certificate"
        assert distribution.firewall_policy == "web-acl"
        assert set(distribution.depends_on) == {"service", "certificate", "web-acl"}

    def test_origin_port_follows_listener(self):
        graph = compose(make_config(listener_port=8443), StaticResolver())
        distribution = graph.one(Kind.EDGE_DISTRIBUTION)
        service = graph.one(Kind.MANAGED_SERVICE)
        assert distribution.origin_https_port == service.endpoint.listener_port == 8443

    def test_alias_subdomains_are_bound(self):
        graph = compose(make_config(alias_subdomains=("www",)), StaticResolver())
        distribution = graph.one(Kind.EDGE_DISTRIBUTION)
        assert distribution.domain_names == ("example.com", "www.example.com")

    def test_uncovered_name_is_rejected(self, graph):
        fresh = ResourceGraph()
        for descriptor in graph:
            if descriptor.kind in (Kind.EDGE_DISTRIBUTION, Kind.DNS_RECORD):
                break
            fresh.add(descriptor)
        with pytest.raises(ProvisionSpecError, match="does not cover a.b.example.com"):
            build_edge_distribution(
                fresh,
                service=fresh.one(Kind.MANAGED_SERVICE),
                certificate=fresh.one(Kind.TLS_CERTIFICATE),
                firewall=fresh.one(Kind.WEB_FIREWALL_POLICY),
                domain_names=["example.com", "a.b.example.com"],
            )


class TestDnsRecords:
    def test_alias_record_for_apex(self, graph):
        (record,) = graph.of_kind(Kind.DNS_RECORD)
        assert record.record_name == "example.com"
        assert record.record_type == "A"
        assert record.zone_id == "Z0123456789ABC"
        assert str(record.alias_target) == "${distribution.domain_name}"
        assert str(record.alias_zone_id) == "${distribution.hosted_zone_id}"
        assert record.depends_on == ("distribution",)

    def test_one_record_per_bound_name(self):
        graph = compose(make_config(alias_subdomains=("www", "api")), StaticResolver())
        assert [r.record_name for r in graph.of_kind(Kind.DNS_RECORD)] == [
            "example.com",
            "www.example.com",
            "api.example.com",
        ]
