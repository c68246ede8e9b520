"""
Sub-builders of the composition pass.

Each builder takes the graph under construction plus the descriptors it
depends on, checks those are already in the graph, and adds what it produces.
The order they must run in is fixed by ``composer.compose.compose``.
"""

import ipaddress
from typing import Sequence

from composer.config import ComposerConfig
from composer.descriptors import (
    CacheCluster,
    ComputeCluster,
    DatabaseInstance,
    DnsRecord,
    EdgeDistribution,
    HealthCheck,
    HostedZone,
    Kind,
    LoadBalancedEndpoint,
    ManagedRule,
    ManagedService,
    NetworkTopology,
    ObjectStore,
    ObjectStoreGrant,
    RelationalCluster,
    ScalingController,
    ScalingPolicy,
    SecurityBoundary,
    Subnet,
    SubnetTier,
    TlsCertificate,
    WebFirewallPolicy,
)
from composer.errors import ConfigurationError, PolicyConflictError, ProvisionSpecError
from composer.graph import ResourceGraph
from composer.log_config import get_logger
from composer.secrets import SecretResolver

logger = get_logger(__name__)

# Smallest subnet the provider accepts.
MAX_SUBNET_PREFIX = 28

# Read/write on the bucket and its objects.
OBJECT_STORE_READ_WRITE: tuple[str, ...] = (
    "s3:GetObject*",
    "s3:GetBucket*",
    "s3:List*",
    "s3:DeleteObject*",
    "s3:PutObject",
    "s3:PutObjectLegalHold",
    "s3:PutObjectRetention",
    "s3:PutObjectTagging",
    "s3:PutObjectVersionTagging",
    "s3:Abort*",
)

ALL_METHODS = ("GET", "HEAD", "OPTIONS", "PUT", "PATCH", "POST", "DELETE")
CACHED_METHODS = ("GET", "HEAD", "OPTIONS")


# Network ---------------------------------------------------------------------


def _carve_subnets(
    cidr: str,
    zone_count: int,
    public_mask: int,
    private_mask: int,
) -> tuple[Subnet, ...]:
    """
    Allocate one public and one private subnet per zone, in that tier order.

    Blocks are taken sequentially from the start of the address space, each
    aligned to its own size, so they never overlap.
    """
    try:
        network = ipaddress.ip_network(cidr)
    except ValueError as err:
        raise ConfigurationError(f"invalid address space {cidr!r}: {err}", "network") from err

    for tier, mask in ((SubnetTier.PUBLIC, public_mask), (SubnetTier.PRIVATE, private_mask)):
        if not network.prefixlen <= mask <= MAX_SUBNET_PREFIX:
            raise ConfigurationError(
                f"{tier.value} mask /{mask} must be between /{network.prefixlen} "
                f"and /{MAX_SUBNET_PREFIX} for {cidr}",
                "network",
            )

    subnets: list[Subnet] = []
    cursor = int(network.network_address)
    end = int(network.broadcast_address)
    for tier, mask in ((SubnetTier.PUBLIC, public_mask), (SubnetTier.PRIVATE, private_mask)):
        size = 2 ** (network.max_prefixlen - mask)
        for zone in range(zone_count):
            start = -(-cursor // size) * size
            if start + size - 1 > end:
                raise ConfigurationError(
                    f"{cidr} cannot hold {zone_count} public /{public_mask} and "
                    f"{zone_count} private /{private_mask} subnets",
                    "network",
                )
            block = type(network)((start, mask))
            subnets.append(Subnet(f"{tier.value}-{zone}", tier, zone, str(block)))
            cursor = start + size
    return tuple(subnets)


def build_network(graph: ResourceGraph, config: ComposerConfig) -> NetworkTopology:
    """Virtual network with a public and a private-with-egress subnet per zone."""
    if config.zone_count < 1:
        raise ConfigurationError(
            f"zone count must be at least 1, got {config.zone_count}", "network"
        )
    if not 0 <= config.nat_gateways <= config.zone_count:
        raise ConfigurationError(
            f"NAT gateway count must be between 0 and the zone count "
            f"({config.zone_count}), got {config.nat_gateways}",
            "network",
        )
    subnets = _carve_subnets(
        config.vpc_cidr, config.zone_count, config.public_mask, config.private_mask
    )
    return graph.add(
        NetworkTopology(
            name="network",
            cidr=config.vpc_cidr,
            zone_count=config.zone_count,
            nat_gateways=config.nat_gateways,
            subnets=subnets,
        )
    )


def build_security_boundary(
    graph: ResourceGraph,
    network: NetworkTopology,
    label: str,
    description: str,
) -> SecurityBoundary:
    graph.require(network, Kind.NETWORK, "security_boundary")
    return graph.add(
        SecurityBoundary(
            name=label,
            depends_on=(network.name,),
            network=network.name,
            description=description,
        )
    )


# Data tier -------------------------------------------------------------------


def build_relational_cluster(
    graph: ResourceGraph,
    network: NetworkTopology,
    config: ComposerConfig,
) -> RelationalCluster:
    """Aurora MySQL cluster with one writer, ``reader_count`` readers and its own boundary."""
    graph.require(network, Kind.NETWORK, "relational_cluster")
    if config.writer_count != 1:
        raise ProvisionSpecError(
            f"a cluster needs exactly one writer, got {config.writer_count}",
            "relational_cluster",
        )
    if config.reader_count < 0:
        raise ProvisionSpecError(
            f"reader count cannot be negative, got {config.reader_count}",
            "relational_cluster",
        )

    boundary = build_security_boundary(
        graph, network, "database-boundary", "Security group for RDS cluster"
    )
    # Writer and readers share one instance class.
    instances = (
        DatabaseInstance("writer", "writer", config.instance_class),
        *(
            DatabaseInstance(f"reader-{i}", "reader", config.instance_class)
            for i in range(config.reader_count)
        ),
    )
    return graph.add(
        RelationalCluster(
            name="database",
            depends_on=(network.name, boundary.name),
            network=network.name,
            security_boundary=boundary.name,
            engine="aurora-mysql",
            engine_version=config.engine_version,
            instances=instances,
            database_name=config.database_name,
        )
    )


def build_cache_cluster(
    graph: ResourceGraph,
    network: NetworkTopology,
    config: ComposerConfig,
) -> CacheCluster:
    """Redis cluster of ``cache_node_count`` nodes with its own boundary."""
    graph.require(network, Kind.NETWORK, "cache_cluster")
    if config.cache_node_count < 1:
        raise ProvisionSpecError(
            f"a cache cluster needs at least one node, got {config.cache_node_count}",
            "cache_cluster",
        )

    boundary = build_security_boundary(
        graph, network, "cache-boundary", "Security group for Redis cache cluster"
    )
    return graph.add(
        CacheCluster(
            name="cache",
            depends_on=(network.name, boundary.name),
            network=network.name,
            security_boundary=boundary.name,
            engine="redis",
            engine_version=config.cache_engine_version,
            node_count=config.cache_node_count,
            node_type=config.cache_node_type,
        )
    )


# Compute, storage, TLS -------------------------------------------------------


def build_compute_cluster(graph: ResourceGraph, network: NetworkTopology) -> ComputeCluster:
    graph.require(network, Kind.NETWORK, "compute_cluster")
    return graph.add(
        ComputeCluster(name="cluster", depends_on=(network.name,), network=network.name)
    )


def build_object_store(graph: ResourceGraph) -> ObjectStore:
    return graph.add(ObjectStore(name="bucket"))


def build_certificate(graph: ResourceGraph, zone: HostedZone) -> TlsCertificate:
    """
    Certificate for the zone apex and its wildcard, validated over DNS.

    Only the requirement is declared here. Writing the validation records and
    waiting for issuance belong to the provider.
    """
    return graph.add(
        TlsCertificate(
            name="certificate",
            domain_name=zone.zone_name,
            subject_alternative_names=(f"*.{zone.zone_name}",),
            zone_id=zone.zone_id,
        )
    )


# Service ---------------------------------------------------------------------


def build_managed_service(
    graph: ResourceGraph,
    config: ComposerConfig,
    *,
    network: NetworkTopology,
    cluster: ComputeCluster | None,
    database: RelationalCluster | None,
    cache: CacheCluster | None,
    certificate: TlsCertificate | None,
    bucket: ObjectStore | None,
    resolver: SecretResolver,
) -> tuple[ManagedService, ScalingController]:
    """
    Load-balanced container service wired to the data tier.

    The service gets its own boundary as network identity. Once the service
    exists it is admitted into the database and cache boundaries, which is why
    those boundaries accept rules after their own construction.
    """
    requester = "managed_service"
    graph.require(network, Kind.NETWORK, requester)
    cluster = graph.require(cluster, Kind.COMPUTE_CLUSTER, requester)
    database = graph.require(database, Kind.RELATIONAL_CLUSTER, requester)
    cache = graph.require(cache, Kind.CACHE_CLUSTER, requester)
    certificate = graph.require(certificate, Kind.TLS_CERTIFICATE, requester)
    bucket = graph.require(bucket, Kind.OBJECT_STORE, requester)
    database_boundary: SecurityBoundary = graph[database.security_boundary]
    cache_boundary: SecurityBoundary = graph[cache.security_boundary]

    identity = build_security_boundary(
        graph, network, "service-boundary", "Security group for the service tasks"
    )

    # The one place credentials cross from storage into compute.
    credentials = resolver.resolve(database.credentials)

    service = graph.add(
        ManagedService(
            name="service",
            depends_on=(
                cluster.name,
                database.name,
                cache.name,
                certificate.name,
                bucket.name,
                identity.name,
                database_boundary.name,
                cache_boundary.name,
            ),
            cluster=cluster.name,
            network_identity=identity.name,
            container_name="web",
            image=config.container_image,
            cpu=config.task_cpu,
            memory=config.task_memory,
            desired_count=config.desired_tasks,
            environment=(
                ("DB_HOST", database.endpoint),
                ("DB_NAME", database.database_name),
                ("CACHE_HOST", cache.endpoint),
            ),
            secrets=(
                ("DB_USER", credentials.username),
                ("DB_PASSWORD", credentials.password),
            ),
            endpoint=LoadBalancedEndpoint(
                certificate=certificate.name,
                listener_port=config.listener_port,
                target_port=config.container_port,
                health_check=HealthCheck(path=config.health_check_path),
            ),
            grants=(ObjectStoreGrant(bucket.name, OBJECT_STORE_READ_WRITE),),
        )
    )

    graph.admit(database_boundary, identity, database.port, requester=service)
    graph.admit(cache_boundary, identity, cache.port, requester=service)

    scaling = graph.add(
        ScalingController(
            name="service-scaling",
            depends_on=(service.name,),
            service=service.name,
            min_capacity=config.min_tasks,
            max_capacity=config.max_tasks,
            policies=(
                ScalingPolicy("CpuScaling", "cpu_utilization", float(config.cpu_target)),
                ScalingPolicy(
                    "RequestScaling",
                    "requests_per_target",
                    float(config.requests_per_target),
                ),
            ),
        )
    )
    logger.debug(
        "Service %r admitted to %r:%d and %r:%d",
        service.name,
        database_boundary.name,
        database.port,
        cache_boundary.name,
        cache.port,
    )
    return service, scaling


# Edge ------------------------------------------------------------------------


def managed_rules(names: Sequence[str], first_priority: int) -> list[ManagedRule]:
    """Managed rule groups in evaluation order, numbered from ``first_priority``."""
    return [ManagedRule(name, first_priority + i) for i, name in enumerate(names)]


def build_web_firewall_policy(
    graph: ResourceGraph,
    rules: Sequence[ManagedRule],
) -> WebFirewallPolicy:
    """Allow-by-default firewall evaluating ``rules`` in strictly increasing priority."""
    metrics: set[str] = set()
    previous: ManagedRule | None = None
    for rule in rules:
        if previous is not None and rule.priority <= previous.priority:
            if rule.priority == previous.priority:
                reason = "share priority"
            else:
                reason = "are out of priority order"
            raise PolicyConflictError(
                f"rules {previous.name!r} ({previous.priority}) and "
                f"{rule.name!r} ({rule.priority}) {reason}",
                "web_firewall_policy",
            )
        if rule.metric_name in metrics:
            raise PolicyConflictError(
                f"metric name {rule.metric_name!r} is used by more than one rule",
                "web_firewall_policy",
            )
        metrics.add(rule.metric_name)
        previous = rule

    return graph.add(
        WebFirewallPolicy(
            name="web-acl",
            scope="CLOUDFRONT",
            default_action="allow",
            rules=tuple(rules),
            metric_name="WebAcl",
        )
    )


def build_edge_distribution(
    graph: ResourceGraph,
    *,
    service: ManagedService | None,
    certificate: TlsCertificate | None,
    firewall: WebFirewallPolicy | None,
    domain_names: Sequence[str],
) -> EdgeDistribution:
    """
    Edge distribution in front of the service endpoint.

    Origin traffic is HTTPS only, viewers are redirected to HTTPS. Every bound
    name must be covered by the certificate.
    """
    requester = "edge_distribution"
    service = graph.require(service, Kind.MANAGED_SERVICE, requester)
    certificate = graph.require(certificate, Kind.TLS_CERTIFICATE, requester)
    firewall = graph.require(firewall, Kind.WEB_FIREWALL_POLICY, requester)

    if not domain_names:
        raise ProvisionSpecError("at least one domain name must be bound", requester)
    uncovered = [name for name in domain_names if not certificate.covers(name)]
    if uncovered:
        raise ProvisionSpecError(
            f"certificate {certificate.name!r} ({', '.join(certificate.domains)}) "
            f"does not cover {', '.join(uncovered)}",
            requester,
        )

    return graph.add(
        EdgeDistribution(
            name="distribution",
            depends_on=(service.name, certificate.name, firewall.name),
            origin=service.name,
            origin_hostname=service.public_hostname,
            origin_protocol_policy="https-only",
            origin_http_port=80,
            origin_https_port=service.endpoint.listener_port,
            viewer_protocol_policy="redirect-to-https",
            allowed_methods=ALL_METHODS,
            cached_methods=CACHED_METHODS,
            domain_names=tuple(domain_names),
            certificate=certificate.name,
            firewall_policy=firewall.name,
        )
    )


# DNS -------------------------------------------------------------------------


def build_dns_records(
    graph: ResourceGraph,
    zone: HostedZone,
    distribution: EdgeDistribution | None,
) -> list[DnsRecord]:
    """One alias A record per name bound to the distribution."""
    distribution = graph.require(distribution, Kind.EDGE_DISTRIBUTION, "dns_record")
    return [
        graph.add(
            DnsRecord(
                name=f"alias-{domain}",
                depends_on=(distribution.name,),
                zone_id=zone.zone_id,
                record_name=domain,
                record_type="A",
                alias_target=distribution.hostname,
                alias_zone_id=distribution.hosted_zone_id,
            )
        )
        for domain in distribution.domain_names
    ]
