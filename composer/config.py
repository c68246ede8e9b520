"""
Typed, validated configuration for one composition pass.

Replaces process-wide constants (zone, health-check path, sizing) with an
explicit value passed into ``compose()``. Validation runs once, on
construction; builders trust what they receive except for the structural
checks they own (writer count, cache node count, subnet capacity).
"""

import ipaddress
from dataclasses import dataclass

from composer.errors import ConfigurationError

DEFAULT_WAF_RULE_GROUPS: tuple[str, ...] = (
    "AWSManagedRulesCommonRuleSet",
    "AWSManagedRulesPHPRuleSet",
    "AWSManagedRulesWordPressRuleSet",
    "AWSManagedRulesSQLiRuleSet",
)


@dataclass(frozen=True)
class ComposerConfig:
    """
    Attributes:
        zone_id: ID of the imported hosted zone.
        zone_name: Apex domain of the zone (e.g. "example.com").
        container_image: Image URI the service runs. Building it is out of scope.
        health_check_path: Path the load balancer probes for liveness.
        container_port: Port the container listens on.
        listener_port: Public HTTPS port of the load balancer.
        instance_class: Class shared by the writer and every reader.
        writer_count: Writers in the relational cluster; anything but 1 is rejected.
        reader_count: Readers in the relational cluster (0 for writer-only).
        engine_version: Aurora MySQL engine version pin.
        database_name: Default schema, also handed to the service as DB_NAME.
        cache_node_count: Redis nodes.
        cache_node_type: Redis node class.
        cache_engine_version: Redis engine version pin.
        min_tasks / max_tasks / desired_tasks: Service task counts.
        cpu_target: Average CPU utilization percent the service scales on.
        requests_per_target: Requests per target the service scales on.
        task_cpu / task_memory: Fargate task size (CPU units, MiB).
        vpc_cidr: Network address space.
        zone_count: Availability zones to spread subnets over.
        nat_gateways: NAT gateways for private egress.
        public_mask / private_mask: Prefix length of each subnet tier.
        alias_subdomains: Extra labels bound to the distribution (e.g. "www").
        waf_rule_groups: Managed rule groups, in evaluation order.
        waf_first_priority: Priority of the first rule group.
    """

    zone_id: str
    zone_name: str
    container_image: str
    health_check_path: str
    container_port: int = 80
    listener_port: int = 443
    instance_class: str = "db.r7g.large"
    writer_count: int = 1
    reader_count: int = 1
    engine_version: str = "8.0.mysql_aurora.3.07.1"
    database_name: str = "wordpress"
    cache_node_count: int = 2
    cache_node_type: str = "cache.t4g.medium"
    cache_engine_version: str = "7.0"
    min_tasks: int = 1
    max_tasks: int = 3
    desired_tasks: int = 2
    cpu_target: float = 50.0
    requests_per_target: int = 10000
    task_cpu: int = 256
    task_memory: int = 1024
    vpc_cidr: str = "10.0.0.0/16"
    zone_count: int = 2
    nat_gateways: int = 1
    public_mask: int = 24
    private_mask: int = 24
    alias_subdomains: tuple[str, ...] = ()
    waf_rule_groups: tuple[str, ...] = DEFAULT_WAF_RULE_GROUPS
    waf_first_priority: int = 2

    def __post_init__(self):
        for key in ("zone_id", "zone_name", "container_image", "health_check_path"):
            if not getattr(self, key):
                self._fail(f"{key} is required")
        if self.zone_name.endswith(".") or self.zone_name.startswith("*"):
            self._fail(f"zone_name must be a bare apex domain, got {self.zone_name!r}")
        if not self.health_check_path.startswith("/"):
            self._fail(
                f"health_check_path must start with '/', got {self.health_check_path!r}"
            )
        for key in ("container_port", "listener_port"):
            port = getattr(self, key)
            if not 1 <= port <= 65535:
                self._fail(f"{key} must be between 1 and 65535, got {port}")
        if self.min_tasks < 1:
            self._fail(f"min_tasks must be at least 1, got {self.min_tasks}")
        if not self.min_tasks <= self.desired_tasks <= self.max_tasks:
            self._fail(
                "task counts must satisfy min_tasks <= desired_tasks <= max_tasks, "
                f"got {self.min_tasks} <= {self.desired_tasks} <= {self.max_tasks}"
            )
        if not 0 < self.cpu_target <= 100:
            self._fail(f"cpu_target must be in (0, 100], got {self.cpu_target}")
        if self.requests_per_target < 1:
            self._fail(
                f"requests_per_target must be positive, got {self.requests_per_target}"
            )
        if self.task_cpu < 1 or self.task_memory < 1:
            self._fail("task_cpu and task_memory must be positive")
        try:
            ipaddress.ip_network(self.vpc_cidr)
        except ValueError as err:
            raise ConfigurationError(
                f"vpc_cidr is not a valid network: {err}", builder="config"
            ) from err
        for label in self.alias_subdomains:
            if not label or "." in label or "*" in label:
                self._fail(f"alias_subdomains entries must be single labels, got {label!r}")

    @property
    def domain_names(self) -> tuple[str, ...]:
        """Names bound to the edge distribution: the apex, then each alias."""
        return (
            self.zone_name,
            *(f"{label}.{self.zone_name}" for label in self.alias_subdomains),
        )

    @staticmethod
    def _fail(message: str) -> None:
        raise ConfigurationError(message, builder="config")
