"""Entity resolution package."""

from sitelog.entity_resolution.resolver import (
    RESOLVER_VERSION,
    EntityResolver,
    PersonResolution,
    ResolutionContext,
    ResolutionOutcome,
    VendorResolution,
)

__all__ = [
    "RESOLVER_VERSION",
    "EntityResolver",
    "PersonResolution",
    "ResolutionContext",
    "ResolutionOutcome",
    "VendorResolution",
]
