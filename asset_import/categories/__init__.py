"""Category tree resolution."""

from asset_import.categories.resolver import CategoryResolver, KeyedLocks, ResolverCounts

__all__ = ["CategoryResolver", "KeyedLocks", "ResolverCounts"]
