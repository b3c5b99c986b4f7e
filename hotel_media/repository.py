# hotel_media/repository.py

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from django.db import DatabaseError, transaction

from .models import HotelMediaIndex
from .naming import TIER_ORIGINALS

logger = logging.getLogger(__name__)

# Columns written by the engines; everything else is managed by Django.
INDEX_FIELDS = (
    'slug', 'file_name', 'storage_path', 'public_url',
    'file_type', 'file_size', 'sequence', 'original_url',
)


class MediaIndexRepository:
    """
    Data access layer for the media index.
    All direct database interactions for HotelMediaIndex should be in this class.
    """

    def find_by_external_id(self, external_id: str) -> List[HotelMediaIndex]:
        return list(HotelMediaIndex.objects.filter(external_id=external_id))

    def count(self) -> int:
        return HotelMediaIndex.objects.count()

    def originals_by_source_url(self, external_id: str) -> Dict[str, Tuple[int, str, int]]:
        """Maps each ingested source URL to (sequence, file_path, file_size) of its originals-tier row."""
        rows = (
            HotelMediaIndex.objects
            .filter(
                external_id=external_id,
                original_url__isnull=False,
                sequence__isnull=False,
                file_path__startswith=f"{TIER_ORIGINALS}/",
            )
            .values_list('original_url', 'sequence', 'file_path', 'file_size')
        )
        return {url: (sequence, file_path, file_size) for url, sequence, file_path, file_size in rows}

    def upsert(self, row: HotelMediaIndex) -> bool:
        """
        Update-if-exists by (external_id, file_path).

        An existing original_url is kept when the new row carries none.
        Returns True when a row was inserted.
        """
        defaults = {field: getattr(row, field) for field in INDEX_FIELDS}
        if defaults['original_url'] is None:
            defaults.pop('original_url')
        _, created = HotelMediaIndex.objects.update_or_create(
            external_id=row.external_id,
            file_path=row.file_path,
            defaults=defaults,
        )
        return created

    def upsert_batch(self, rows: Iterable[HotelMediaIndex]) -> Tuple[int, int, List[str]]:
        """
        Upserts a batch in one transaction. Each row gets its own savepoint so a
        bad row is reported without rolling back the rest of the batch.

        Returns (inserted, updated, errors).
        """
        inserted = updated = 0
        errors = []
        with transaction.atomic():
            for row in rows:
                try:
                    with transaction.atomic():
                        if self.upsert(row):
                            inserted += 1
                        else:
                            updated += 1
                except DatabaseError as e:
                    logger.warning(f"Index upsert failed for {row.file_path}: {e}")
                    errors.append(f"{row.file_path}: {e}")
        return inserted, updated, errors

    def replace_for_hotel(self, external_id: str, rows: List[HotelMediaIndex]) -> Tuple[int, int]:
        """
        Replace-all: drops every row of the hotel, then inserts `rows`.
        Source URLs survive on rows whose file_path is still present.
        Returns (deleted, created).
        """
        with transaction.atomic():
            existing = HotelMediaIndex.objects.filter(external_id=external_id)
            source_urls = dict(
                existing.filter(original_url__isnull=False).values_list('file_path', 'original_url')
            )
            for row in rows:
                if row.original_url is None:
                    row.original_url = source_urls.get(row.file_path)
            deleted, _ = existing.delete()
            created = HotelMediaIndex.objects.bulk_create(rows)
        return deleted, len(created)

    def move_paths(self, external_id: str, moves: Dict[str, Tuple[str, int, str]]) -> int:
        """
        Re-points rows at renamed objects. `moves` maps an old file_path to
        (new file_path, sequence, public_url); everything else on the row,
        original_url included, travels with it. Rows already sitting on a new
        path describe an object that is no longer there and are dropped.
        Returns the number of rows moved.
        """
        if not moves:
            return 0
        targets = [target for target, _, _ in moves.values()]
        with transaction.atomic():
            rows = list(HotelMediaIndex.objects.filter(external_id=external_id, file_path__in=list(moves)))
            HotelMediaIndex.objects.filter(external_id=external_id, file_path__in=list(moves) + targets).delete()
            for row in rows:
                target, sequence, public_url = moves[row.file_path]
                row.pk = None
                row.file_path = row.storage_path = target
                row.file_name = target.rsplit('/', 1)[-1]
                row.sequence = sequence
                row.public_url = public_url
            HotelMediaIndex.objects.bulk_create(rows)
        return len(rows)

    def delete_paths(self, file_paths: Iterable[str], external_id: Optional[str] = None) -> int:
        queryset = HotelMediaIndex.objects.filter(file_path__in=list(file_paths))
        if external_id:
            queryset = queryset.filter(external_id=external_id)
        deleted, _ = queryset.delete()
        return deleted


def build_index_row(*, external_id: str, slug: str, tier: str, file_name: str, file_size: int,
                    file_type: str, public_url: str, sequence: Optional[int],
                    original_url: Optional[str] = None) -> HotelMediaIndex:
    file_path = f"{tier}/{slug}/{file_name}"
    return HotelMediaIndex(
        external_id=str(external_id),
        slug=slug,
        file_name=file_name,
        file_path=file_path,
        storage_path=file_path,
        public_url=public_url,
        file_type=file_type,
        file_size=file_size or 0,
        sequence=sequence,
        original_url=original_url,
    )
