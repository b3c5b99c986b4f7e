# hotel_media/object_store.py
import logging
import posixpath
from dataclasses import dataclass
from typing import Iterable, List, Optional

from django.conf import settings
from django.core.files.base import ContentFile
from django.core.files.storage import storages

from .exceptions import MoveUnsupported, ObjectExists, RelocationError, StorageError
from .naming import content_type_for, is_hidden

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredObjectInfo:
    name: str
    size: int
    content_type: str


class ObjectStoreClient:
    """
    The narrow storage surface the media engines rely on.

    Wraps a Django storage backend. In production that is django-storages'
    S3Boto3Storage, which also gives us native server-side copies; any other
    backend (tests use InMemoryStorage) goes through the
    download -> upload -> remove fallback for moves.
    """

    def __init__(self, storage=None):
        if storage is None:
            storage = storages[settings.HOTEL_MEDIA["STORAGE_ALIAS"]]
        self.storage = storage

    def _bucket(self):
        # Only S3-backed storages expose a boto3 Bucket.
        return getattr(self.storage, "bucket", None)

    def _key(self, path: str) -> str:
        location = (getattr(self.storage, "location", "") or "").strip("/")
        return f"{location}/{path}" if location else path

    def list(self, prefix: str) -> List[StoredObjectInfo]:
        """Direct children of `prefix` (no recursion). Hidden and placeholder files are skipped."""
        prefix = prefix.strip("/")
        try:
            bucket = self._bucket()
            if bucket is not None:
                return self._list_bucket(bucket, prefix)
            return self._list_storage(prefix)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Could not list '{prefix}': {e}") from e

    def _list_bucket(self, bucket, prefix: str) -> List[StoredObjectInfo]:
        key_prefix = f"{self._key(prefix)}/"
        objects = []
        for summary in bucket.objects.filter(Prefix=key_prefix, Delimiter="/"):
            name = summary.key[len(key_prefix):]
            if "/" in name or is_hidden(name):
                continue
            objects.append(StoredObjectInfo(name=name, size=summary.size, content_type=content_type_for(name)))
        return objects

    def _list_storage(self, prefix: str) -> List[StoredObjectInfo]:
        try:
            _, files = self.storage.listdir(prefix)
        except FileNotFoundError:
            return []
        objects = []
        for name in sorted(files):
            if is_hidden(name):
                continue
            size = self.storage.size(f"{prefix}/{name}")
            objects.append(StoredObjectInfo(name=name, size=size, content_type=content_type_for(name)))
        return objects

    def list_folders(self, prefix: str) -> List[str]:
        prefix = prefix.strip("/")
        try:
            folders, _ = self.storage.listdir(prefix)
        except FileNotFoundError:
            return []
        except Exception as e:
            raise StorageError(f"Could not list folders under '{prefix}': {e}") from e
        return sorted(f for f in folders if f and not is_hidden(f))

    def exists(self, path: str) -> bool:
        try:
            return self.storage.exists(path)
        except Exception as e:
            raise StorageError(f"Could not check '{path}': {e}") from e

    def download(self, path: str) -> Optional[bytes]:
        """Object bytes, or None when nothing is stored at `path`."""
        try:
            if not self.storage.exists(path):
                return None
            with self.storage.open(path, "rb") as fh:
                return fh.read()
        except FileNotFoundError:
            return None
        except Exception as e:
            raise StorageError(f"Could not download '{path}': {e}") from e

    def upload(self, path: str, data: bytes, content_type: str, overwrite: bool = False) -> str:
        try:
            exists = self.storage.exists(path)
            if exists and not overwrite:
                raise ObjectExists(f"'{path}' already exists.")
            if exists and not getattr(self.storage, "file_overwrite", False):
                # Otherwise the backend would pick an alternative name.
                self.storage.delete(path)

            content = ContentFile(data, name=posixpath.basename(path))
            content.content_type = content_type
            saved_path = self.storage.save(path, content)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Could not upload '{path}': {e}") from e

        if saved_path != path:
            raise StorageError(f"Storage saved '{path}' as '{saved_path}'.")
        return saved_path

    def remove(self, paths: Iterable[str]) -> None:
        for path in paths:
            try:
                self.storage.delete(path)
            except FileNotFoundError:
                continue
            except Exception as e:
                raise StorageError(f"Could not delete '{path}': {e}") from e

    def move(self, source: str, target: str) -> None:
        """Native server-side move. Raises MoveUnsupported when the backend has none."""
        bucket = self._bucket()
        if bucket is None:
            raise MoveUnsupported(f"{type(self.storage).__name__} has no native move.")
        try:
            bucket.Object(self._key(target)).copy_from(
                CopySource={"Bucket": bucket.name, "Key": self._key(source)}
            )
            bucket.Object(self._key(source)).delete()
        except Exception as e:
            raise StorageError(f"Native move '{source}' -> '{target}' failed: {e}") from e

    def relocate(self, source: str, target: str) -> str:
        """
        Moves an object, falling back to download -> upload -> remove.

        The fallback is one unit: a failure at any step raises RelocationError
        naming the step, and the source is only removed once the target is
        written. Returns "move" or "copy".
        """
        try:
            self.move(source, target)
            return "move"
        except MoveUnsupported:
            pass
        except StorageError as e:
            logger.warning(f"{e}. Falling back to copy.")

        try:
            data = self.download(source)
        except StorageError as e:
            raise RelocationError(source, target, "download", e) from e
        if data is None:
            raise RelocationError(source, target, "download", FileNotFoundError(source))

        try:
            self.upload(target, data, content_type_for(target), overwrite=True)
        except StorageError as e:
            raise RelocationError(source, target, "upload", e) from e

        try:
            self.remove([source])
        except StorageError as e:
            raise RelocationError(source, target, "remove", e) from e
        return "copy"

    def public_url(self, path: str) -> str:
        return self.storage.url(path)
