"""
The composition pass: configuration in, sealed resource graph out.

Builders run in a fixed topological order, each reading attributes of
descriptors built before it. The pass is synchronous and has no partial
result: any error propagates and the half-built graph is dropped.
"""

from composer import builders
from composer.config import ComposerConfig
from composer.descriptors import HostedZone
from composer.errors import ConfigurationError
from composer.graph import ResourceGraph
from composer.log_config import get_logger
from composer.secrets import OncePerPassResolver, SecretResolver

logger = get_logger(__name__)


def compose(
    config: ComposerConfig,
    resolver: SecretResolver,
    zone: HostedZone | None = None,
) -> ResourceGraph:
    """
    Build the full resource graph for one deployment.

    Args:
        config: Validated configuration for the pass.
        resolver: Secret-resolution collaborator. Called once per credential
            handle for the whole pass.
        zone: Imported hosted zone. Defaults to the zone named in ``config``;
            when given it must match it.

    Returns:
        A sealed ``ResourceGraph``; boundary rules can no longer change.
    """
    if zone is None:
        zone = HostedZone(config.zone_id, config.zone_name)
    elif (zone.zone_id, zone.zone_name) != (config.zone_id, config.zone_name):
        raise ConfigurationError(
            f"zone {zone.zone_name!r} ({zone.zone_id}) does not match configured "
            f"zone {config.zone_name!r} ({config.zone_id})",
            "config",
        )

    logger.info("Composing resource graph for %s", zone.zone_name)
    resolver = OncePerPassResolver(resolver)
    graph = ResourceGraph()

    network = builders.build_network(graph, config)
    database = builders.build_relational_cluster(graph, network, config)
    cache = builders.build_cache_cluster(graph, network, config)
    cluster = builders.build_compute_cluster(graph, network)
    bucket = builders.build_object_store(graph)
    certificate = builders.build_certificate(graph, zone)

    service, _ = builders.build_managed_service(
        graph,
        config,
        network=network,
        cluster=cluster,
        database=database,
        cache=cache,
        certificate=certificate,
        bucket=bucket,
        resolver=resolver,
    )

    firewall = builders.build_web_firewall_policy(
        graph,
        builders.managed_rules(config.waf_rule_groups, config.waf_first_priority),
    )
    distribution = builders.build_edge_distribution(
        graph,
        service=service,
        certificate=certificate,
        firewall=firewall,
        domain_names=config.domain_names,
    )
    builders.build_dns_records(graph, zone, distribution)

    graph.seal()
    logger.info(
        "Composed %d resources with %d dependencies", len(graph), len(graph.edges())
    )
    return graph
