"""
The resource graph assembled by a composition pass.

Descriptors are added in build order. A descriptor can only be added once all
of its dependencies are present, which keeps the graph acyclic by
construction: every edge points from an earlier node to a later one.
"""

from typing import Any, Iterator, TypeVar

from composer.descriptors import Descriptor, IngressRule, Kind, SecurityBoundary
from composer.errors import DependencyOrderError, ProvisionSpecError, SealedGraphError
from composer.log_config import get_logger

logger = get_logger(__name__)

D = TypeVar("D", bound=Descriptor)

# At most one of these per deployment.
SINGLETON_KINDS = frozenset({Kind.TLS_CERTIFICATE, Kind.WEB_FIREWALL_POLICY})


class ResourceGraph:
    def __init__(self):
        self._nodes: dict[str, Descriptor] = {}
        self._sealed = False

    def add(self, descriptor: D) -> D:
        """Append a descriptor whose dependencies are all already present."""
        builder = descriptor.kind.value
        if self._sealed:
            raise SealedGraphError(
                f"cannot add {descriptor.name!r}: the build pass is over",
                builder=builder,
            )
        if descriptor.name in self._nodes:
            raise ProvisionSpecError(
                f"a resource named {descriptor.name!r} already exists",
                builder=builder,
            )
        missing = [dep for dep in descriptor.depends_on if dep not in self._nodes]
        if missing:
            raise DependencyOrderError(
                f"{descriptor.name!r} depends on {', '.join(map(repr, missing))} "
                "which has not been built yet",
                builder=builder,
            )
        if descriptor.kind in SINGLETON_KINDS and self.of_kind(descriptor.kind):
            raise ProvisionSpecError(
                f"only one {descriptor.kind.value} may exist per deployment",
                builder=builder,
            )
        self._nodes[descriptor.name] = descriptor
        logger.debug("Added %s %r", descriptor.kind.value, descriptor.name)
        return descriptor

    def require(self, descriptor: D | None, kind: Kind, requester: str) -> D:
        """
        Return ``descriptor`` if it is a ``kind`` already built in this graph.

        Builders call this on each input before using it, so handing a builder
        a dependency from another graph, or none at all, fails the same way.
        """
        if descriptor is None or self._nodes.get(descriptor.name) is not descriptor:
            raise DependencyOrderError(
                f"{requester} needs a {kind.value} that has not been built yet",
                builder=requester,
            )
        if descriptor.kind is not kind:
            raise DependencyOrderError(
                f"{requester} needs a {kind.value}, got {descriptor.kind.value} "
                f"{descriptor.name!r}",
                builder=requester,
            )
        return descriptor

    def admit(
        self,
        boundary: SecurityBoundary,
        source: SecurityBoundary,
        port: int,
        *,
        requester: Descriptor,
    ) -> IngressRule:
        """
        ``boundary.admit`` restricted to members of this graph.

        The boundary, the source boundary and the requester must all have been
        built here, so every rule names groups that will be realized.
        """
        builder = requester.kind.value
        self.require(boundary, Kind.SECURITY_BOUNDARY, builder)
        self.require(source, Kind.SECURITY_BOUNDARY, builder)
        if self._nodes.get(requester.name) is not requester:
            raise DependencyOrderError(
                f"{requester.name!r} must be built before it can add rules "
                f"to {boundary.name!r}",
                builder=builder,
            )
        return boundary.admit(source, port, requester=requester)

    def seal(self) -> "ResourceGraph":
        """Finalize every boundary's rules. No further changes are accepted."""
        for boundary in self.of_kind(Kind.SECURITY_BOUNDARY):
            boundary.rules.seal()
        self._sealed = True
        return self

    @property
    def sealed(self) -> bool:
        return self._sealed

    def of_kind(self, kind: Kind) -> list[Any]:
        return [d for d in self._nodes.values() if d.kind is kind]

    def one(self, kind: Kind) -> Any:
        matches = self.of_kind(kind)
        if len(matches) != 1:
            raise ProvisionSpecError(
                f"expected exactly one {kind.value}, found {len(matches)}",
                builder=kind.value,
            )
        return matches[0]

    def boundaries(self) -> list[SecurityBoundary]:
        return self.of_kind(Kind.SECURITY_BOUNDARY)

    def build_order(self) -> list[str]:
        return list(self._nodes)

    def edges(self) -> list[tuple[str, str]]:
        """(dependency, dependent) pairs in build order."""
        return [(dep, d.name) for d in self._nodes.values() for dep in d.depends_on]

    def to_dict(self) -> dict[str, Any]:
        """Export suitable for stack outputs. Secrets are redacted."""
        return {
            "resources": [d.to_dict() for d in self._nodes.values()],
            "edges": [list(edge) for edge in self.edges()],
        }

    def __getitem__(self, name: str) -> Descriptor:
        return self._nodes[name]

    def __contains__(self, name: object) -> bool:
        return name in self._nodes

    def __iter__(self) -> Iterator[Descriptor]:
        return iter(self._nodes.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ResourceGraph):
            return NotImplemented
        return (
            list(self._nodes.items()) == list(other._nodes.items())
            and self._sealed == other._sealed
        )
