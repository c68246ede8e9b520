"""
Composition engine for the web stack.

Turns a ``ComposerConfig`` into a sealed ``ResourceGraph`` of immutable
resource descriptors (network, security boundaries, database, cache, compute,
certificate, service, firewall, edge distribution, DNS). Pure Python: nothing
here talks to a cloud provider, so it is testable without a Pulumi runtime.
The ``components`` package realizes the graph.
"""

from composer.compose import compose
from composer.config import ComposerConfig
from composer.descriptors import AttributeRef, HostedZone, Kind
from composer.errors import (
    ComposerError,
    ConfigurationError,
    DependencyOrderError,
    PolicyConflictError,
    ProvisionSpecError,
    SealedGraphError,
)
from composer.graph import ResourceGraph
from composer.secrets import ManagedSecretResolver, Secret, SecretResolver

__all__ = [
    "AttributeRef",
    "ComposerConfig",
    "ComposerError",
    "ConfigurationError",
    "DependencyOrderError",
    "HostedZone",
    "Kind",
    "ManagedSecretResolver",
    "PolicyConflictError",
    "ProvisionSpecError",
    "ResourceGraph",
    "SealedGraphError",
    "Secret",
    "SecretResolver",
    "compose",
]
