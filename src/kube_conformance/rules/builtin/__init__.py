"""Built-in rule catalog, grouped by category."""

from . import availability, networking, observability, resources, security

BUILTIN_RULES = (
    *security.RULES,
    *resources.RULES,
    *availability.RULES,
    *networking.RULES,
    *observability.RULES,
)

__all__ = ["BUILTIN_RULES"]
