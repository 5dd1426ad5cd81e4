"""Record registration for uploaded payloads."""

from asset_import.registrar.registrar import (
    AnimationDescriptor,
    AvatarDescriptor,
    Registration,
    ResourceDescriptor,
    ResourceRegistrar,
    SourceRef,
    ensure_same_source,
    resolve_operator,
)

__all__ = [
    "AnimationDescriptor",
    "AvatarDescriptor",
    "Registration",
    "ResourceDescriptor",
    "ResourceRegistrar",
    "SourceRef",
    "ensure_same_source",
    "resolve_operator",
]
