"""
Errors raised by the composition pass.

Every error aborts the whole pass; there is no partial graph. Each carries the
name of the builder that raised it so a failure points at the violated rule.
"""


class ComposerError(Exception):
    """Base exception for all composition errors."""

    def __init__(self, message: str, builder: str | None = None):
        super().__init__(message)
        self.message = message
        self.builder = builder

    def __str__(self) -> str:
        if self.builder:
            return f"[{self.builder}] {self.message}"
        return self.message


class ConfigurationError(ComposerError):
    """Raised for an invalid or missing configuration parameter."""


class ProvisionSpecError(ComposerError):
    """Raised when a resource description is structurally invalid (e.g. zero writers)."""


class PolicyConflictError(ComposerError):
    """Raised when firewall rule priorities collide or are out of order."""


class DependencyOrderError(ComposerError):
    """Raised when a builder runs before a dependency it needs is in the graph."""


class SealedGraphError(DependencyOrderError):
    """Raised on any change attempted after the build pass has finished."""
