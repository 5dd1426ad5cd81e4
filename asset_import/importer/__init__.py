"""Tree walk, per-file import and run summaries."""

from asset_import.importer.classify import (
    EntryKind,
    avatar_storage_key,
    classify_entry,
    infer_gender,
    infer_part_type,
    parse_gender,
    resource_slug,
    resource_storage_key,
)
from asset_import.importer.orchestrator import ImportOrchestrator
from asset_import.importer.summary import ImportSummary, ItemFailure, ItemOutcome, Orphan

__all__ = [
    "EntryKind",
    "ImportOrchestrator",
    "ImportSummary",
    "ItemFailure",
    "ItemOutcome",
    "Orphan",
    "avatar_storage_key",
    "classify_entry",
    "infer_gender",
    "infer_part_type",
    "parse_gender",
    "resource_slug",
    "resource_storage_key",
]
