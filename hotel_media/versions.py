# hotel_media/versions.py
import logging
import threading
from typing import Optional

from django.db import DatabaseError, IntegrityError, ProgrammingError, connection, transaction

from .exceptions import MediaValidationError, VersionSlugRequired
from .models import HotelMediaVersion
from .naming import normalize_slug

logger = logging.getLogger(__name__)


def _is_missing_table(error: DatabaseError) -> bool:
    # Postgres reports an undefined table as ProgrammingError, SQLite as OperationalError.
    return isinstance(error, ProgrammingError) or "no such table" in str(error).lower()


class VersionCounter:
    """
    Per-slug counter clients use to bust image caches.

    A missing row means version 1. A missing table means the same thing for
    every hotel: it is detected once per process, warned about once, and bumps
    become no-ops from then on.
    """

    _table_present: Optional[bool] = None
    _lock = threading.Lock()

    @classmethod
    def reset_table_check(cls):
        with cls._lock:
            cls._table_present = None

    @classmethod
    def _mark_absent(cls, error=None):
        with cls._lock:
            already_known = cls._table_present is False
            cls._table_present = False
        if not already_known:
            logger.warning(
                f"Table '{HotelMediaVersion._meta.db_table}' is not available ({error or 'not found'}); "
                f"media versions fall back to 1."
            )

    def _table_available(self) -> bool:
        if VersionCounter._table_present is None:
            present = HotelMediaVersion._meta.db_table in connection.introspection.table_names()
            if present:
                VersionCounter._table_present = True
            else:
                self._mark_absent()
        return bool(VersionCounter._table_present)

    def _lookup(self, slug: Optional[str], external_id: Optional[str]):
        if slug:
            return HotelMediaVersion.objects.filter(slug=normalize_slug(slug))
        if external_id:
            return HotelMediaVersion.objects.filter(external_id=str(external_id))
        raise MediaValidationError("Either a slug or an external id is required.")

    def get_version(self, slug: Optional[str] = None, external_id: Optional[str] = None) -> int:
        queryset = self._lookup(slug, external_id)
        if not self._table_available():
            return 1
        try:
            record = queryset.order_by('-version').first()
        except DatabaseError as e:
            if not _is_missing_table(e):
                raise
            self._mark_absent(e)
            return 1
        return record.version if record else 1

    def bump_version(self, slug: Optional[str] = None, external_id: Optional[str] = None) -> int:
        """
        Increments the counter and returns the new version. The first bump of a
        hotel creates its row at version 2. A row can only be created with a slug.
        """
        queryset = self._lookup(slug, external_id)
        if not self._table_available():
            return 1
        try:
            try:
                record = self._increment(queryset, slug, external_id)
            except IntegrityError:
                # A concurrent first bump created the row; increment that one.
                record = self._increment(queryset, slug, external_id)
        except DatabaseError as e:
            if not _is_missing_table(e):
                raise
            self._mark_absent(e)
            return 1
        logger.info(f"Media version for {record.slug} is now {record.version}.")
        return record.version

    def _increment(self, queryset, slug, external_id) -> HotelMediaVersion:
        with transaction.atomic():
            record = queryset.select_for_update().first()
            if record is None:
                if not slug:
                    raise VersionSlugRequired()
                return HotelMediaVersion.objects.create(
                    slug=normalize_slug(slug),
                    external_id=str(external_id or ''),
                    version=2,
                )
            record.version = (record.version or 1) + 1
            if external_id and not record.external_id:
                record.external_id = str(external_id)
            record.save(update_fields=['version', 'external_id', 'updated_at'])
            return record
