# hotel_media/folder_sync.py
import logging
from dataclasses import dataclass, field
from typing import List

from .exceptions import ObjectExists, TransientIOError
from .naming import TIER_ORIGINALS, TIER_PUBLIC, normalize_slug
from .object_store import ObjectStoreClient

logger = logging.getLogger(__name__)


@dataclass
class FolderSyncResult:
    slug: str
    copied_to_public: int = 0
    copied_to_originals: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self):
        return {
            "slug": self.slug,
            "copied_to_public": self.copied_to_public,
            "copied_to_originals": self.copied_to_originals,
            "errors": list(self.errors),
        }


class FolderSync:
    """Best-effort healing: copies files that exist in only one tier into the other, by name."""

    def __init__(self, store: ObjectStoreClient):
        self.store = store

    def sync(self, slug: str) -> FolderSyncResult:
        slug = normalize_slug(slug)
        result = FolderSyncResult(slug=slug)

        public = {obj.name: obj for obj in self.store.list(f"{TIER_PUBLIC}/{slug}")}
        originals = {obj.name: obj for obj in self.store.list(f"{TIER_ORIGINALS}/{slug}")}

        for name in sorted(set(originals) - set(public)):
            if self._copy(slug, name, originals[name], TIER_ORIGINALS, TIER_PUBLIC, result):
                result.copied_to_public += 1
        for name in sorted(set(public) - set(originals)):
            if self._copy(slug, name, public[name], TIER_PUBLIC, TIER_ORIGINALS, result):
                result.copied_to_originals += 1

        logger.info(
            f"Folder sync for {slug}: {result.copied_to_public} to public, "
            f"{result.copied_to_originals} to originals, {len(result.errors)} error(s)."
        )
        return result

    def _copy(self, slug: str, name: str, obj, source_tier: str, target_tier: str, result: FolderSyncResult) -> bool:
        source = f"{source_tier}/{slug}/{name}"
        target = f"{target_tier}/{slug}/{name}"
        try:
            data = self.store.download(source)
            if data is None:
                result.errors.append(f"{source}: disappeared before it could be copied")
                return False
            self.store.upload(target, data, obj.content_type, overwrite=False)
            return True
        except ObjectExists:
            # Someone else filled the gap in the meantime.
            return False
        except TransientIOError as e:
            logger.warning(f"Could not copy {source} -> {target}: {e}")
            result.errors.append(f"{name}: {e}")
            return False
