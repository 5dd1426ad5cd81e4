"""
Filename and directory-entry classification.

Pure functions: nothing here touches the filesystem contents, the store or
the database, so every rule can be tested from a file name alone.
"""

import enum
import hashlib
import re
from pathlib import Path, PurePosixPath
from typing import Iterable

from asset_import.db.models import Gender, PartType

ANIMATION_ASSET_CLASS = "animations"
AVATAR_ASSET_CLASS = "avatar"

PART_TYPE_MARKERS = [
    ("hair", PartType.HAIR),
    ("top", PartType.TOP),
    ("bottom", PartType.BOTTOM),
    ("shoes", PartType.SHOES),
    ("acc", PartType.ACCESSORY),
    ("body", PartType.BODY),
    ("fullset", PartType.FULLSET),
]

_WHITESPACE = re.compile(r"\s+")
_NON_SLUG_CHARS = re.compile(r"[^a-z0-9]")


class EntryKind(str, enum.Enum):
    DIRECTORY = "directory"
    ASSET = "asset"
    IGNORED = "ignored"


def classify_entry(path: Path, accepted_extensions: Iterable[str]) -> EntryKind:
    """
    Classify one directory entry.

    Hidden entries, symlinks to nowhere, special files and files whose
    extension is not accepted are IGNORED. Extension matching is
    case-insensitive.
    """
    if path.name.startswith("."):
        return EntryKind.IGNORED
    if path.is_dir():
        return EntryKind.DIRECTORY
    if path.is_file() and path.suffix.lower() in {ext.lower() for ext in accepted_extensions}:
        return EntryKind.ASSET
    return EntryKind.IGNORED


def infer_gender(file_name: str) -> Gender:
    """
    Infer the gender tag of an animation from its file name.

    Case-insensitive substring match. "female" wins over "male" (which it
    contains); neither yields UNISEX.

    Example:
        >>> infer_gender("walk_female_01.glb")
        <Gender.FEMALE: 'FEMALE'>
        >>> infer_gender("female_vs_male.glb")
        <Gender.FEMALE: 'FEMALE'>
        >>> infer_gender("wave.glb")
        <Gender.UNISEX: 'UNISEX'>
    """
    lowered = file_name.lower()
    if "female" in lowered:
        return Gender.FEMALE
    if "male" in lowered:
        return Gender.MALE
    return Gender.UNISEX


def parse_gender(directory_name: str) -> Gender:
    """
    Gender named by an avatar gender directory (case-insensitive).

    Raises:
        ValueError: The name is not male, female or unisex
    """
    try:
        return Gender(directory_name.strip().upper())
    except ValueError:
        raise ValueError(f"Unknown avatar gender directory: {directory_name!r}") from None


def infer_part_type(directory_name: str) -> PartType:
    """
    Infer the avatar part type from a part directory name.

    Case-insensitive substring match, checked in the order of
    PART_TYPE_MARKERS; the first marker found wins.

    Example:
        >>> infer_part_type("Hair Styles")
        <PartType.HAIR: 'HAIR'>
        >>> infer_part_type("accessories")
        <PartType.ACCESSORY: 'ACCESSORY'>

    Raises:
        ValueError: No marker matches
    """
    lowered = directory_name.lower()
    for marker, part_type in PART_TYPE_MARKERS:
        if marker in lowered:
            return part_type
    raise ValueError(f"Unknown part type: {directory_name!r}")


def normalize_segment(value: str) -> str:
    """Lower-case and replace whitespace runs with underscores."""
    return _WHITESPACE.sub("_", value.strip().lower())


def normalize_path(category_path: str) -> str:
    return "/".join(normalize_segment(part) for part in category_path.split("/") if part)


def stem(file_name: str) -> str:
    """File name without its final extension."""
    return PurePosixPath(file_name).stem


def resource_slug(category_path: str, file_name: str) -> str:
    """
    Resource id of a generic asset: normalized category path joined by "-"
    followed by the normalized file stem.

    Example:
        >>> resource_slug("Furniture/Office Chairs", "Swivel Chair.glb")
        'furniture-office_chairs-swivel_chair'
    """
    hierarchy = normalize_path(category_path).replace("/", "-")
    return f"{hierarchy}-{normalize_segment(stem(file_name))}"


def resource_storage_key(key_prefix: str, category_path: str, file_name: str) -> str:
    """
    Destination key of a generic asset.

    Example:
        >>> resource_storage_key("models/items", "Furniture/Office Chairs", "Swivel Chair.glb")
        'models/items/furniture/office_chairs/swivel_chair.glb'
    """
    extension = PurePosixPath(file_name).suffix.lower()
    parts = [
        key_prefix.strip("/"),
        normalize_path(category_path),
        f"{normalize_segment(stem(file_name))}{extension}",
    ]
    return "/".join(part for part in parts if part)


def avatar_storage_key(prefix: str, category_path: str, file_name: str) -> str:
    """
    Destination key of an avatar part: {prefix}/avatar/{gender}/{part}/{stem}{ext}.

    Example:
        >>> avatar_storage_key("models", "Male/Hair", "Short Bob.glb")
        'models/avatar/male/hair/short_bob.glb'
    """
    return resource_storage_key(
        "/".join(part for part in (prefix.strip("/"), AVATAR_ASSET_CLASS) if part),
        category_path,
        file_name,
    )


def animation_resource_id(file_name: str) -> str:
    """
    Example:
        >>> animation_resource_id("Walk Female-01.glb")
        'anim_walk_female_01'
    """
    return "anim_" + _NON_SLUG_CHARS.sub("_", stem(file_name).lower())


def animation_storage_key(prefix: str, gender: Gender, file_name: str) -> str:
    """
    Destination key of an animation: {prefix}/animations/{gender}/{file name}.

    Example:
        >>> animation_storage_key("models", Gender.FEMALE, "walk_female.glb")
        'models/animations/female/walk_female.glb'
    """
    parts = [prefix.strip("/"), ANIMATION_ASSET_CLASS, gender.value.lower(), file_name]
    return "/".join(part for part in parts if part)


def checksum(data: bytes) -> str:
    """md5 hex digest of a payload."""
    return hashlib.md5(data).hexdigest()
