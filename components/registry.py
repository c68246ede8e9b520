"""
Realized attributes of the graph, keyed by descriptor name.

Components register what the provider hands back for each descriptor (IDs,
hostnames, ARNs) as ``Output`` values; later components resolve the
``AttributeRef`` placeholders in their descriptors against this registry.
Realizing a descriptor before its dependencies therefore fails loudly instead
of producing a dangling reference.
"""

from typing import Any

import pulumi

from composer.descriptors import AttributeRef
from composer.errors import DependencyOrderError


class OutputRegistry:
    def __init__(self):
        self._outputs: dict[str, dict[str, Any]] = {}

    def register(self, name: str, **attributes: Any) -> None:
        self._outputs.setdefault(name, {}).update(attributes)

    def get(self, name: str, attribute: str) -> Any:
        try:
            return self._outputs[name][attribute]
        except KeyError:
            raise DependencyOrderError(
                f"{name}.{attribute} has not been realized yet",
                builder="provisioning",
            ) from None

    def resolve(self, value: Any) -> pulumi.Output[Any]:
        """Turn an ``AttributeRef`` or a plain value into an ``Output``."""
        if isinstance(value, AttributeRef):
            return pulumi.Output.from_input(self.get(value.resource, value.attribute))
        return pulumi.Output.from_input(value)
