"""
Credential handles and the secret-resolution seam.

A relational cluster exposes a ``CredentialHandle`` naming its generated
secret. The service builder asks a ``SecretResolver`` for the username and
password behind that handle; whatever comes back is wrapped in ``Secret`` so it
never shows up in a repr, a log line or an exported graph.
"""

from dataclasses import dataclass
from typing import Any, Protocol

REDACTED = "**********"


class Secret:
    """Opaque wrapper for a credential value. Only ``reveal()`` exposes it."""

    __slots__ = ("_value",)

    def __init__(self, value: Any):
        self._value = value

    def reveal(self) -> Any:
        return self._value

    def __repr__(self) -> str:
        return f"Secret('{REDACTED}')"

    def __str__(self) -> str:
        return REDACTED

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Secret):
            return NotImplemented
        return self._value == other._value

    __hash__ = None  # type: ignore[assignment]


@dataclass(frozen=True)
class CredentialHandle:
    """Reference to the generated credential secret of a relational cluster."""

    resource: str
    secret_name: str


@dataclass(frozen=True)
class SecretKeyRef:
    """A single JSON key inside a generated secret, resolved by the provider."""

    handle: CredentialHandle
    key: str


@dataclass(frozen=True)
class Credentials:
    username: Secret
    password: Secret


class SecretResolver(Protocol):
    def resolve(self, handle: CredentialHandle) -> Credentials: ...


class ManagedSecretResolver:
    """
    Resolve credentials to key references into the provider-managed secret.

    The values stay references: the realization layer hands them to the
    container runtime as secret sources, so plaintext is never written into a
    task definition.
    """

    def resolve(self, handle: CredentialHandle) -> Credentials:
        return Credentials(
            username=Secret(SecretKeyRef(handle, "username")),
            password=Secret(SecretKeyRef(handle, "password")),
        )


class OncePerPassResolver:
    """Memoize another resolver so each handle is resolved once per build pass."""

    def __init__(self, resolver: SecretResolver):
        self._resolver = resolver
        self._resolved: dict[CredentialHandle, Credentials] = {}

    def resolve(self, handle: CredentialHandle) -> Credentials:
        if handle not in self._resolved:
            self._resolved[handle] = self._resolver.resolve(handle)
        return self._resolved[handle]
