# hotel_media/naming.py
"""
Canonical object names and paths for the two storage tiers.

    originals/{slug}/{slug}_{externalId}_{seq}.{ext}
    public/{slug}/{slug}_{externalId}_{seq}_{width}w.{format}

Everything here is pure: no storage, no database.
"""
import posixpath
import re
import unicodedata
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

from .exceptions import InvalidMediaName

TIER_ORIGINALS = "originals"
TIER_PUBLIC = "public"
TIERS = (TIER_ORIGINALS, TIER_PUBLIC)

ALLOWED_FORMATS = ("jpg", "webp", "avif", "png")
DEFAULT_FORMAT = "jpg"
MAX_SEQUENCE = 99

CONTENT_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "avif": "image/avif",
    "gif": "image/gif",
}

PLACEHOLDER_NAME = ".emptyFolderPlaceholder"

_SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
_EXTERNAL_ID_RE = re.compile(r"^[a-z0-9]+$")
_SLUG_JUNK_RE = re.compile(r"[^a-z0-9]+")

# Historical layouts, most specific first. The first match wins.
_LEGACY_PATTERNS = (
    ("timestamped", re.compile(r"^(?P<external_id>\d+)-\d+\.[A-Za-z0-9]+$")),
    ("double-underscore", re.compile(r"__(?P<external_id>[A-Za-z0-9]+)__(?P<sequence>\d+)__")),
    ("public-rendition", re.compile(r"_(?P<external_id>[A-Za-z0-9]+)_(?P<sequence>\d+)_\d+w\.[A-Za-z0-9]+$", re.IGNORECASE)),
    ("original", re.compile(r"_(?P<external_id>[A-Za-z0-9]+)_(?P<sequence>\d{2})\.[A-Za-z0-9]+$", re.IGNORECASE)),
)

# Marks a sequence slot held by an in-flight reorder: "..._tmp{target}f{source}n{step}r{run}..."
_TMP_RE = re.compile(
    r"^(?P<prefix>.+_(?P<external_id>[a-z0-9]+))_tmp(?P<target>\d{2})f(?P<source>\d{2})n(?P<step>\d+)r(?P<run>[a-z0-9]+)"
    r"(?P<suffix>(?:_\d+w)?\.[A-Za-z0-9]+)$"
)


@dataclass(frozen=True)
class ParsedName:
    external_id: str
    sequence: Optional[int]
    pattern: str


@dataclass(frozen=True)
class CanonicalName:
    slug: str
    external_id: str
    sequence: int
    width: Optional[int]
    ext: str


@dataclass(frozen=True)
class TmpName:
    name: str
    external_id: str
    target_sequence: int
    source_sequence: int
    step: int
    run_token: str
    final_name: str
    source_name: str


def pad2(sequence: int) -> str:
    return f"{int(sequence):02d}"


def normalize_slug(raw_slug: str) -> str:
    """Fold a hotel slug to lowercase ASCII words joined by single hyphens."""
    text = unicodedata.normalize("NFKD", raw_slug or "")
    text = text.encode("ascii", "ignore").decode("ascii").lower()
    return _SLUG_JUNK_RE.sub("-", text).strip("-")


def normalize_format(fmt: Optional[str]) -> str:
    value = (fmt or "").strip().lower().lstrip(".")
    if value == "jpeg":
        value = "jpg"
    return value if value in ALLOWED_FORMATS else DEFAULT_FORMAT


def extension_from_url(url: str) -> str:
    path = urlparse(url or "").path
    _, ext = posixpath.splitext(path)
    return normalize_format(ext)


def content_type_for(name: str) -> str:
    _, ext = posixpath.splitext(name or "")
    return CONTENT_TYPES.get(ext.lower().lstrip("."), "image/jpeg")


def is_hidden(name: str) -> bool:
    return not name or name.startswith(".") or name == PLACEHOLDER_NAME


def _validate_token(value: str, label: str, pattern) -> str:
    if not value or len(value) < 2 or not pattern.match(value):
        raise InvalidMediaName(f"Invalid {label}: '{value}'.")
    return value


def _validate_sequence(sequence: int) -> int:
    try:
        sequence = int(sequence)
    except (TypeError, ValueError):
        raise InvalidMediaName(f"Invalid sequence: '{sequence}'.")
    if not 1 <= sequence <= MAX_SEQUENCE:
        raise InvalidMediaName(f"Sequence must be between 1 and {MAX_SEQUENCE}, got {sequence}.")
    return sequence


def build_original_filename(slug: str, external_id: str, sequence: int, ext: str = DEFAULT_FORMAT) -> str:
    _validate_token(slug, "slug", _SLUG_RE)
    _validate_token(str(external_id), "external id", _EXTERNAL_ID_RE)
    sequence = _validate_sequence(sequence)
    return f"{slug}_{external_id}_{pad2(sequence)}.{normalize_format(ext)}"


def build_public_filename(slug: str, external_id: str, sequence: int, width: int = 1600, fmt: str = "avif") -> str:
    _validate_token(slug, "slug", _SLUG_RE)
    _validate_token(str(external_id), "external id", _EXTERNAL_ID_RE)
    sequence = _validate_sequence(sequence)
    if int(width) <= 0:
        raise InvalidMediaName(f"Invalid width: {width}.")
    return f"{slug}_{external_id}_{pad2(sequence)}_{int(width)}w.{normalize_format(fmt)}"


def build_original_path(slug: str, file_name: str) -> str:
    return f"{TIER_ORIGINALS}/{slug}/{file_name}"


def build_public_path(slug: str, file_name: str) -> str:
    return f"{TIER_PUBLIC}/{slug}/{file_name}"


def split_path(path: str):
    """Return (tier, slug, file_name) for a tier/slug/file path, or None."""
    parts = (path or "").strip("/").split("/")
    if len(parts) != 3 or not all(parts):
        return None
    return parts[0], parts[1], parts[2]


def parse_filename(name: str) -> Optional[ParsedName]:
    for pattern_name, regex in _LEGACY_PATTERNS:
        match = regex.search(name or "")
        if match:
            groups = match.groupdict()
            sequence = groups.get("sequence")
            return ParsedName(
                external_id=groups["external_id"],
                sequence=int(sequence) if sequence is not None else None,
                pattern=pattern_name,
            )
    return None


def parse_canonical(name: str, slug: str) -> Optional[CanonicalName]:
    regex = re.compile(
        rf"^{re.escape(slug)}_(?P<external_id>[a-z0-9]+)_(?P<sequence>\d{{2}})"
        r"(?:_(?P<width>\d+)w)?\.(?P<ext>[A-Za-z0-9]+)$"
    )
    match = regex.match(name or "")
    if not match:
        return None
    width = match.group("width")
    return CanonicalName(
        slug=slug,
        external_id=match.group("external_id"),
        sequence=int(match.group("sequence")),
        width=int(width) if width else None,
        ext=match.group("ext").lower(),
    )


def sequence_of(name: str, external_id: str) -> Optional[int]:
    """Sequence embedded right after `_{external_id}_`, if any."""
    match = re.search(rf"_{re.escape(str(external_id))}_(\d{{2}})(?:[._])", name or "")
    return int(match.group(1)) if match else None


def replace_sequence(name: str, external_id: str, old_token: str, new_token: str) -> str:
    pattern = re.compile(rf"_{re.escape(str(external_id))}_{re.escape(old_token)}(?=[._])")
    replaced, count = pattern.subn(f"_{external_id}_{new_token}", name, count=1)
    if not count:
        raise InvalidMediaName(f"'{name}' has no sequence '{old_token}' for {external_id}.")
    return replaced


def make_tmp_name(name: str, external_id: str, old_sequence: int, target_sequence: int, step: int, run_token: str) -> str:
    tag = f"tmp{pad2(target_sequence)}f{pad2(old_sequence)}n{int(step)}r{run_token}"
    return replace_sequence(name, external_id, pad2(old_sequence), tag)


def parse_tmp_name(name: str) -> Optional[TmpName]:
    match = _TMP_RE.match(name or "")
    if not match:
        return None
    target = int(match.group("target"))
    source = int(match.group("source"))
    prefix, suffix = match.group("prefix"), match.group("suffix")
    return TmpName(
        name=name,
        external_id=match.group("external_id"),
        target_sequence=target,
        source_sequence=source,
        step=int(match.group("step")),
        run_token=match.group("run"),
        final_name=f"{prefix}_{pad2(target)}{suffix}",
        source_name=f"{prefix}_{pad2(source)}{suffix}",
    )


def original_candidates(public_name: str):
    """Originals-tier names a public rendition may have been derived from."""
    stem, ext = posixpath.splitext(public_name)
    base = re.sub(r"_\d+w$", "", stem)
    candidates = [public_name, f"{base}{ext}", f"{base}.{DEFAULT_FORMAT}"]
    return list(dict.fromkeys(candidates))
