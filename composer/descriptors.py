"""
Resource descriptors: immutable, named descriptions of provider-managed objects.

A descriptor lists the names of the descriptors it depends on in
``depends_on``. Values the provider only knows after realization (hostnames,
ARNs, zone IDs) are carried as ``AttributeRef`` placeholders. The only mutable
part of the model is a ``SecurityBoundary``'s rule set, which is append-only
and sealed together with the graph.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, ClassVar

from composer.errors import DependencyOrderError, SealedGraphError
from composer.secrets import REDACTED, CredentialHandle, Secret


class Kind(str, Enum):
    NETWORK = "network"
    SECURITY_BOUNDARY = "security_boundary"
    RELATIONAL_CLUSTER = "relational_cluster"
    CACHE_CLUSTER = "cache_cluster"
    COMPUTE_CLUSTER = "compute_cluster"
    OBJECT_STORE = "object_store"
    TLS_CERTIFICATE = "tls_certificate"
    MANAGED_SERVICE = "managed_service"
    SCALING_CONTROLLER = "scaling_controller"
    WEB_FIREWALL_POLICY = "web_firewall_policy"
    EDGE_DISTRIBUTION = "edge_distribution"
    DNS_RECORD = "dns_record"


class SubnetTier(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


@dataclass(frozen=True)
class AttributeRef:
    """An attribute of another descriptor, known only once it is realized."""

    resource: str
    attribute: str

    def __str__(self) -> str:
        return f"${{{self.resource}.{self.attribute}}}"


@dataclass(frozen=True)
class HostedZone:
    """Imported DNS zone. Owned by the zone registry, not by this graph."""

    zone_id: str
    zone_name: str


def _export(value: Any) -> Any:
    if isinstance(value, Secret):
        return REDACTED
    if isinstance(value, AttributeRef):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, RuleSet):
        return [_export(rule) for rule in value]
    if hasattr(value, "__dataclass_fields__"):
        return {f.name: _export(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, (list, tuple)):
        return [_export(item) for item in value]
    if isinstance(value, dict):
        return {key: _export(item) for key, item in value.items()}
    return value


@dataclass(frozen=True, kw_only=True)
class Descriptor:
    kind: ClassVar[Kind]

    name: str
    depends_on: tuple[str, ...] = ()

    def ref(self, attribute: str) -> AttributeRef:
        return AttributeRef(self.name, attribute)

    def to_dict(self) -> dict[str, Any]:
        """Plain-data view of the descriptor with every secret redacted."""
        return {"kind": self.kind.value, **_export(self)}


# Network ---------------------------------------------------------------------


@dataclass(frozen=True)
class Subnet:
    name: str
    tier: SubnetTier
    zone_index: int
    cidr: str


@dataclass(frozen=True, kw_only=True)
class NetworkTopology(Descriptor):
    kind: ClassVar[Kind] = Kind.NETWORK

    cidr: str
    zone_count: int
    nat_gateways: int
    subnets: tuple[Subnet, ...]

    def subnets_in(self, tier: SubnetTier) -> tuple[Subnet, ...]:
        return tuple(s for s in self.subnets if s.tier is tier)

    def egress_gateway_for(self, subnet: Subnet) -> int | None:
        """
        Index of the NAT gateway a private subnet egresses through.

        Gateways sit in the public subnets of the first ``nat_gateways`` zones.
        A private subnet uses the gateway in its own zone when there is one,
        otherwise the first. ``None`` for public subnets or when there are no
        gateways at all.
        """
        if subnet.tier is SubnetTier.PUBLIC or self.nat_gateways == 0:
            return None
        return subnet.zone_index if subnet.zone_index < self.nat_gateways else 0


# Security boundaries ---------------------------------------------------------


@dataclass(frozen=True)
class IngressRule:
    source: str
    port: int
    protocol: str = "tcp"
    granted_by: str = ""


class RuleSet:
    """Append-only ingress rules, unique per (source, port)."""

    def __init__(self):
        self._rules: list[IngressRule] = []
        self._sealed = False

    def append(self, rule: IngressRule) -> IngressRule:
        for existing in self._rules:
            if (existing.source, existing.port) == (rule.source, rule.port):
                return existing
        if self._sealed:
            raise SealedGraphError(
                f"cannot admit {rule.source} on port {rule.port}: rules are final",
                builder="security_boundary",
            )
        self._rules.append(rule)
        return rule

    def seal(self) -> None:
        self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    def __iter__(self):
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RuleSet):
            return NotImplemented
        return self._rules == other._rules

    def __repr__(self) -> str:
        return f"RuleSet({self._rules!r})"


@dataclass(frozen=True, kw_only=True)
class SecurityBoundary(Descriptor):
    """
    Ingress/egress policy container scoped to a network.

    Egress is left fully open: permissive egress is the baseline policy for
    every boundary and is not tightened here.
    """

    kind: ClassVar[Kind] = Kind.SECURITY_BOUNDARY

    network: str
    description: str
    allow_all_egress: bool = True
    rules: RuleSet = field(default_factory=RuleSet)

    def admit(
        self,
        source: "SecurityBoundary",
        port: int,
        *,
        requester: Descriptor,
    ) -> IngressRule:
        """
        Allow TCP traffic on ``port`` from members of ``source``.

        Only a descriptor that was built with this boundary as a dependency
        may add rules to it. Admitting the same (source, port) twice returns
        the rule already in place.
        """
        if self.name not in requester.depends_on:
            raise DependencyOrderError(
                f"{requester.name!r} does not depend on {self.name!r} "
                "and may not add rules to it",
                builder="security_boundary",
            )
        return self.rules.append(
            IngressRule(source=source.name, port=port, granted_by=requester.name)
        )


# Data tier -------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseInstance:
    name: str
    role: str
    instance_class: str


@dataclass(frozen=True, kw_only=True)
class RelationalCluster(Descriptor):
    kind: ClassVar[Kind] = Kind.RELATIONAL_CLUSTER

    network: str
    security_boundary: str
    engine: str
    engine_version: str
    instances: tuple[DatabaseInstance, ...]
    database_name: str
    port: int = 3306
    subnet_tier: SubnetTier = SubnetTier.PRIVATE

    @property
    def writer(self) -> DatabaseInstance:
        return next(i for i in self.instances if i.role == "writer")

    @property
    def readers(self) -> tuple[DatabaseInstance, ...]:
        return tuple(i for i in self.instances if i.role == "reader")

    @property
    def endpoint(self) -> AttributeRef:
        return self.ref("endpoint")

    @property
    def credentials(self) -> CredentialHandle:
        return CredentialHandle(self.name, f"{self.name}-credentials")


@dataclass(frozen=True, kw_only=True)
class CacheCluster(Descriptor):
    kind: ClassVar[Kind] = Kind.CACHE_CLUSTER

    network: str
    security_boundary: str
    engine: str
    engine_version: str
    node_count: int
    node_type: str
    port: int = 6379
    subnet_tier: SubnetTier = SubnetTier.PRIVATE

    @property
    def endpoint(self) -> AttributeRef:
        return self.ref("endpoint")


# Compute, storage, TLS -------------------------------------------------------


@dataclass(frozen=True, kw_only=True)
class ComputeCluster(Descriptor):
    kind: ClassVar[Kind] = Kind.COMPUTE_CLUSTER

    network: str

    @property
    def scheduling_context(self) -> AttributeRef:
        return self.ref("arn")


@dataclass(frozen=True, kw_only=True)
class ObjectStore(Descriptor):
    kind: ClassVar[Kind] = Kind.OBJECT_STORE


@dataclass(frozen=True, kw_only=True)
class TlsCertificate(Descriptor):
    kind: ClassVar[Kind] = Kind.TLS_CERTIFICATE

    domain_name: str
    subject_alternative_names: tuple[str, ...]
    zone_id: str
    validation_method: str = "DNS"

    @property
    def domains(self) -> tuple[str, ...]:
        return (self.domain_name, *self.subject_alternative_names)

    @property
    def validation_domains(self) -> tuple[str, ...]:
        """Domains needing their own validation record. ``*.x`` shares the one for ``x``."""
        seen: list[str] = []
        for domain in self.domains:
            base = domain[2:] if domain.startswith("*.") else domain
            if base not in seen:
                seen.append(base)
        return tuple(seen)

    def covers(self, hostname: str) -> bool:
        """True if ``hostname`` matches a domain exactly or one wildcard label."""
        hostname = hostname.lower().rstrip(".")
        for domain in self.domains:
            domain = domain.lower()
            if hostname == domain:
                return True
            if domain.startswith("*."):
                label, _, rest = hostname.partition(".")
                if label and rest == domain[2:]:
                    return True
        return False


# Service ---------------------------------------------------------------------


@dataclass(frozen=True)
class HealthCheck:
    path: str
    protocol: str = "HTTP"


@dataclass(frozen=True)
class LoadBalancedEndpoint:
    certificate: str
    listener_port: int
    target_port: int
    health_check: HealthCheck
    protocol: str = "HTTPS"
    public: bool = True


@dataclass(frozen=True)
class ObjectStoreGrant:
    bucket: str
    actions: tuple[str, ...]


@dataclass(frozen=True, kw_only=True)
class ManagedService(Descriptor):
    """
    Load-balanced container service.

    ``environment`` holds plain bindings; ``secrets`` is the private binding
    set and is redacted in every export.
    """

    kind: ClassVar[Kind] = Kind.MANAGED_SERVICE

    cluster: str
    network_identity: str
    container_name: str
    image: str
    cpu: int
    memory: int
    desired_count: int
    environment: tuple[tuple[str, Any], ...]
    secrets: tuple[tuple[str, Secret], ...]
    endpoint: LoadBalancedEndpoint
    grants: tuple[ObjectStoreGrant, ...] = ()
    subnet_tier: SubnetTier = SubnetTier.PRIVATE

    @property
    def public_hostname(self) -> AttributeRef:
        return self.ref("load_balancer_dns")


@dataclass(frozen=True)
class ScalingPolicy:
    name: str
    metric: str
    target_value: float


@dataclass(frozen=True, kw_only=True)
class ScalingController(Descriptor):
    kind: ClassVar[Kind] = Kind.SCALING_CONTROLLER

    service: str
    min_capacity: int
    max_capacity: int
    policies: tuple[ScalingPolicy, ...]


# Edge ------------------------------------------------------------------------


@dataclass(frozen=True)
class ManagedRule:
    name: str
    priority: int
    vendor: str = "AWS"
    override_action: str = "none"

    @property
    def metric_name(self) -> str:
        return f"{self.name}Metric"


@dataclass(frozen=True, kw_only=True)
class WebFirewallPolicy(Descriptor):
    kind: ClassVar[Kind] = Kind.WEB_FIREWALL_POLICY

    scope: str
    default_action: str
    rules: tuple[ManagedRule, ...]
    metric_name: str


@dataclass(frozen=True, kw_only=True)
class EdgeDistribution(Descriptor):
    kind: ClassVar[Kind] = Kind.EDGE_DISTRIBUTION

    origin: str
    origin_hostname: AttributeRef
    origin_protocol_policy: str
    origin_http_port: int
    origin_https_port: int
    viewer_protocol_policy: str
    allowed_methods: tuple[str, ...]
    cached_methods: tuple[str, ...]
    domain_names: tuple[str, ...]
    certificate: str
    firewall_policy: str

    @property
    def hostname(self) -> AttributeRef:
        return self.ref("domain_name")

    @property
    def hosted_zone_id(self) -> AttributeRef:
        return self.ref("hosted_zone_id")


@dataclass(frozen=True, kw_only=True)
class DnsRecord(Descriptor):
    kind: ClassVar[Kind] = Kind.DNS_RECORD

    zone_id: str
    record_name: str
    record_type: str
    alias_target: AttributeRef
    alias_zone_id: AttributeRef
