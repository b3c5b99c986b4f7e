import pytest

from hotel_media.models import HotelMediaIndex
from hotel_media.reconciliation import ReconciliationEngine
from hotel_media.repository import MediaIndexRepository

pytestmark = pytest.mark.django_db


@pytest.fixture
def engine(store):
    return ReconciliationEngine(store, MediaIndexRepository())


@pytest.fixture
def stored_images(put):
    put({
        "public/grand-hotel/grand-hotel_123_01_1600w.avif": b"p1",
        "public/grand-hotel/grand-hotel_123_02_1600w.avif": b"p2",
        "originals/grand-hotel/grand-hotel_123_01.jpg": b"original-1",
        "originals/grand-hotel/grand-hotel_123_02.jpg": b"original-2",
        "originals/grand-hotel/readme.txt": b"notes",
        "public/sea-view/sea-view_456_01_1600w.avif": b"sea",
    })


def test_dry_run_builds_rows_without_writing(engine, stored_images):
    result = engine.reconcile_all(dry_run=True)

    assert result.total_files == 6
    assert result.records_processed == 5
    assert result.errors == ["originals/grand-hotel/readme.txt: unrecognized file name"]
    assert len(result.sample) == 5
    assert result.to_dict()["sample"][0]["file_path"].startswith("public/")
    assert HotelMediaIndex.objects.count() == 0


def test_sweep_inserts_then_updates(engine, stored_images):
    first = engine.reconcile_all()
    second = engine.reconcile_all()

    assert (first.inserted, first.updated) == (5, 0)
    assert (second.inserted, second.updated) == (0, 5)
    row = HotelMediaIndex.objects.get(file_path="public/sea-view/sea-view_456_01_1600w.avif")
    assert (row.external_id, row.slug, row.sequence, row.file_type) == ("456", "sea-view", 1, "image/avif")
    assert row.public_url == "https://cdn.example.com/hotel-media/public/sea-view/sea-view_456_01_1600w.avif"
    assert "sample" not in first.to_dict()


def test_sweep_reports_reorder_leftovers(engine, put):
    put({"public/grand-hotel/grand-hotel_123_tmp02f01n0r9t9_1600w.avif": b"x"})

    result = engine.reconcile_all()

    assert result.records_processed == 0
    assert "interrupted reorder" in result.errors[0]


def test_sweep_keeps_ingested_source_urls(engine, stored_images):
    HotelMediaIndex.objects.create(
        external_id="123", slug="grand-hotel", file_name="grand-hotel_123_01.jpg",
        file_path="originals/grand-hotel/grand-hotel_123_01.jpg",
        storage_path="originals/grand-hotel/grand-hotel_123_01.jpg",
        public_url="old", file_type="image/jpeg", file_size=1, sequence=1,
        original_url="https://photos.example.com/lobby.jpg",
    )

    engine.reconcile_all()

    row = HotelMediaIndex.objects.get(file_path="originals/grand-hotel/grand-hotel_123_01.jpg")
    assert row.original_url == "https://photos.example.com/lobby.jpg"
    assert row.file_size == len(b"original-1")


def test_reconcile_one_replaces_every_row_of_the_hotel(engine, stored_images):
    HotelMediaIndex.objects.create(
        external_id="123", slug="grand-hotel", file_name="gone.jpg", file_path="originals/grand-hotel/gone.jpg",
        storage_path="originals/grand-hotel/gone.jpg", public_url="x", file_type="image/jpeg",
    )
    HotelMediaIndex.objects.create(
        external_id="456", slug="sea-view", file_name="keep.jpg", file_path="originals/sea-view/keep.jpg",
        storage_path="originals/sea-view/keep.jpg", public_url="x", file_type="image/jpeg",
    )

    result = engine.reconcile_one("123", "grand-hotel")

    assert result.deleted == 1
    assert result.created == 5
    assert (result.seq_extracted, result.seq_failed) == (4, 1)
    assert result.sources == {"public": "public/grand-hotel", "originals": "originals/grand-hotel"}
    paths = set(HotelMediaIndex.objects.filter(external_id="123").values_list("file_path", flat=True))
    assert "originals/grand-hotel/gone.jpg" not in paths
    assert "originals/grand-hotel/readme.txt" in paths
    assert HotelMediaIndex.objects.filter(external_id="456").count() == 1


def test_reconcile_one_falls_back_to_the_legacy_layout(engine, put):
    put({
        "hotel-images/123/public/grand-hotel_123_01_1600w.avif": b"p1",
        "hotel-images/123/originals/grand-hotel_123_01.jpg": b"o1",
    })

    result = engine.reconcile_one("123", "Grand Hotel")

    assert result.slug == "grand-hotel"
    assert result.sources["public"] == "hotel-images/123/public"
    assert result.created == 2
    row = HotelMediaIndex.objects.get(file_name="grand-hotel_123_01_1600w.avif")
    assert row.file_path == "hotel-images/123/public/grand-hotel_123_01_1600w.avif"
    assert row.slug == "grand-hotel"


def test_public_copy_wins_when_both_tiers_share_a_name(engine, put):
    put({
        "public/grand-hotel/grand-hotel_123_01.jpg": b"public",
        "originals/grand-hotel/grand-hotel_123_01.jpg": b"original",
    })

    result = engine.reconcile_one("123", "grand-hotel")

    assert result.created == 1
    assert HotelMediaIndex.objects.get(external_id="123").file_path == "public/grand-hotel/grand-hotel_123_01.jpg"


def test_reconcile_one_with_nothing_stored_clears_the_hotel(engine):
    HotelMediaIndex.objects.create(
        external_id="123", slug="grand-hotel", file_name="gone.jpg", file_path="public/grand-hotel/gone.jpg",
        storage_path="public/grand-hotel/gone.jpg", public_url="x", file_type="image/jpeg",
    )

    result = engine.reconcile_one("123", "grand-hotel")

    assert (result.deleted, result.created) == (1, 0)
    assert result.sources == {"public": None, "originals": None}
