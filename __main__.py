"""
Stack Composer - Pulumi entrypoint.

Composes the resource graph from Pulumi config, then realizes it tier by tier
with one ComponentResource per tier, in graph build order:

- **Network**: VPC, public/private subnets, NAT egress, every security group
  and the ingress rules the service back-wired into the data tier groups.
- **Data tier**: Aurora MySQL and Redis. Endpoints and the managed credential
  secret are registered for the service.
- **Certificate**: ACM certificate for the zone and its wildcard, validated
  through the imported hosted zone.
- **Service**: Fargate service behind an HTTPS load balancer with CPU and
  request-count autoscaling and read/write access to its bucket.
- **Edge**: WAF web ACL, CloudFront distribution in front of the load
  balancer, alias records for every bound domain.

Stack exports: url, distribution_domain, load_balancer_dns, bucket_name,
composition (the graph with secrets redacted).
"""

import pulumi
import pulumi_aws as aws

from components import (
    CertificateInfra,
    DataTierInfra,
    EdgeInfra,
    NetworkInfra,
    OutputRegistry,
    ServiceInfra,
)
from composer import Kind, ManagedSecretResolver, compose
from composer.log_config import set_global_log_level
from config import StackConfig

# CloudFront takes certificates and web ACLs from this region only.
EDGE_REGION = "us-east-1"


def _component_name(project_name: str, environment: str, prefix: str) -> str:
    return f"{prefix}-{project_name}-{environment}"


def main():
    """
    Compose the graph and realize it.

    Reads config, runs the composition pass with the managed-secret resolver
    (credentials stay references into the database's generated secret), then
    instantiates each tier component against a shared output registry and
    exports the main endpoints.
    """
    config = StackConfig.from_pulumi_config(pulumi.Config())
    set_global_log_level(config.log_level)

    if aws.config.region != EDGE_REGION:
        pulumi.log.warn(
            f"Stack region is {aws.config.region!r}; the certificate and web ACL "
            f"are only usable by CloudFront in {EDGE_REGION}"
        )

    def name(prefix: str) -> str:
        return _component_name(config.project_name, config.environment, prefix)

    graph = compose(config.composer, ManagedSecretResolver())
    registry = OutputRegistry()

    NetworkInfra(
        name=name("net"),
        topology=graph.one(Kind.NETWORK),
        boundaries=graph.boundaries(),
        registry=registry,
    )
    DataTierInfra(
        name=name("data"),
        database=graph.one(Kind.RELATIONAL_CLUSTER),
        cache=graph.one(Kind.CACHE_CLUSTER),
        registry=registry,
    )
    CertificateInfra(
        name=name("tls"),
        certificate=graph.one(Kind.TLS_CERTIFICATE),
        registry=registry,
    )
    service = ServiceInfra(
        name=name("svc"),
        cluster=graph.one(Kind.COMPUTE_CLUSTER),
        bucket=graph.one(Kind.OBJECT_STORE),
        service=graph.one(Kind.MANAGED_SERVICE),
        scaling=graph.one(Kind.SCALING_CONTROLLER),
        registry=registry,
    )
    edge = EdgeInfra(
        name=name("edge"),
        firewall=graph.one(Kind.WEB_FIREWALL_POLICY),
        distribution=graph.one(Kind.EDGE_DISTRIBUTION),
        records=graph.of_kind(Kind.DNS_RECORD),
        registry=registry,
    )

    for output_name, value in [
        ("url", edge.url),
        ("distribution_domain", edge.distribution_domain_name),
        ("load_balancer_dns", service.load_balancer_dns),
        ("bucket_name", service.bucket_name),
        ("composition", graph.to_dict()),
    ]:
        pulumi.export(output_name, value)


if __name__ == "__main__":
    main()
