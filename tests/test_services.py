import pytest

from hotel_media.exceptions import HotelNotFound, ImageNotFound, MediaValidationError, UpstreamServiceError
from hotel_media.ingestion import SourceImage
from hotel_media.models import HotelMediaIndex, HotelMediaVersion
from hotel_media.services import MediaPipelineService
from hotel_media_internals.sabre import DecodedImages, SabreImage, UnparseableResponse
from tests.conftest import EXTERNAL_ID, FakeDirectory, FakeFetcher, make_png

pytestmark = pytest.mark.django_db


class FakeSabre:
    def __init__(self, result):
        self.result = result
        self.requested = []

    def fetch_images(self, hotel_code):
        self.requested.append(hotel_code)
        return self.result


@pytest.fixture
def service(store, directory):
    return MediaPipelineService(store=store, directory=directory, fetcher=FakeFetcher())


@pytest.fixture(autouse=True)
def small_renditions(settings):
    settings.HOTEL_MEDIA = {**settings.HOTEL_MEDIA, "PUBLIC_WIDTH": 16, "PUBLIC_FORMAT": "png"}


def test_ingest_resolves_and_normalizes_the_slug(service, directory, store):
    service._fetcher = FakeFetcher({"https://photos.example.com/a.png": make_png()})

    result = service.ingest(EXTERNAL_ID, [{"url": "https://photos.example.com/a.png"}])

    assert directory.lookups == [EXTERNAL_ID]
    assert result.slug == "grand-hotel"
    assert result.migrated_images[0].source_label == "manual"
    assert store.exists("originals/grand-hotel/grand-hotel_123_01.png")


def test_ingest_with_an_explicit_slug_skips_the_directory(service, directory):
    service._fetcher = FakeFetcher({"https://photos.example.com/a.png": make_png()})

    result = service.ingest(EXTERNAL_ID, [SourceImage("https://photos.example.com/a.png")], slug="Sea View")

    assert directory.lookups == []
    assert result.slug == "sea-view"


def test_ingest_caps_the_request_size(service, settings):
    settings.HOTEL_MEDIA = {**settings.HOTEL_MEDIA, "MAX_INGEST_IMAGES": 2}

    with pytest.raises(MediaValidationError):
        service.ingest(EXTERNAL_ID, [{"url": f"https://photos.example.com/{i}.jpg"} for i in range(3)], slug="x1")


def test_unknown_hotel_is_rejected_before_any_io(store):
    service = MediaPipelineService(store=store, directory=FakeDirectory(hotels={}), fetcher=FakeFetcher())

    with pytest.raises(HotelNotFound):
        service.ingest("404", [{"url": "https://photos.example.com/a.png"}])


def test_import_from_sabre_ingests_the_listed_urls(service, store):
    urls = ["https://sabre.example.com/1.png", "https://sabre.example.com/2.png"]
    service._fetcher = FakeFetcher({url: make_png() for url in urls})
    service._sabre_client = FakeSabre(DecodedImages(shape="Images", images=[SabreImage(url=url) for url in urls]))

    result = service.import_from_sabre(EXTERNAL_ID)

    assert result.statistics["succeeded"] == 2
    assert {image.source_label for image in result.migrated_images} == {"sabre"}
    assert len(store.list("public/grand-hotel")) == 2


def test_unparseable_sabre_answer_is_an_upstream_error(service):
    service._sabre_client = FakeSabre(UnparseableResponse("no known image layout"))

    with pytest.raises(UpstreamServiceError):
        service.import_from_sabre(EXTERNAL_ID)


def test_delete_image_removes_both_tiers_and_their_rows(service, store, put):
    public_path = "public/grand-hotel/grand-hotel_123_01_1600w.avif"
    original_path = "originals/grand-hotel/grand-hotel_123_01.jpg"
    put({public_path: b"p", original_path: b"o", "public/grand-hotel/grand-hotel_123_02_1600w.avif": b"p2"})
    service.reconcile_one(EXTERNAL_ID)

    result = service.delete_image(public_path)

    assert result.deleted == [public_path, original_path]
    assert result.index_rows_deleted == 2
    assert (result.slug, result.external_id) == ("grand-hotel", "123")
    assert not store.exists(original_path)
    assert HotelMediaIndex.objects.filter(external_id=EXTERNAL_ID).count() == 1


def test_delete_image_finds_originals_in_the_legacy_layout(service, store, put):
    put({
        "public/grand-hotel/grand-hotel_123_01_1600w.avif": b"p",
        "hotel-images/123/originals/grand-hotel_123_01.jpg": b"o",
    })

    result = service.delete_image("public/grand-hotel/grand-hotel_123_01_1600w.avif")

    assert result.deleted[1] == "hotel-images/123/originals/grand-hotel_123_01.jpg"


def test_delete_image_validates_the_path(service):
    with pytest.raises(MediaValidationError):
        service.delete_image("originals/grand-hotel/grand-hotel_123_01.jpg")
    with pytest.raises(ImageNotFound):
        service.delete_image("public/grand-hotel/missing.avif")


def test_bump_by_external_id_resolves_the_slug_for_a_new_counter(service, directory):
    assert service.bump_version(external_id=EXTERNAL_ID) == 2
    assert directory.lookups == [EXTERNAL_ID]
    assert HotelMediaVersion.objects.get(slug="grand-hotel").external_id == EXTERNAL_ID
    assert service.get_version(external_id=EXTERNAL_ID) == 2


def test_index_status_compares_storage_with_the_index(service, put):
    put({
        "public/grand-hotel/grand-hotel_123_01_1600w.avif": b"p",
        "originals/grand-hotel/grand-hotel_123_01.jpg": b"o",
        "originals/grand-hotel/notes.txt": b"n",
    })

    before = service.index_status()
    service.reconcile_all()
    after = service.index_status()

    assert before == {"storage_file_count": 2, "unparseable_count": 1, "index_record_count": 0, "needs_sync": True}
    assert after["index_record_count"] == 2
    assert after["needs_sync"] is False


def test_reorder_and_folder_sync_go_through_the_hotel(service, store, put):
    put({
        "public/grand-hotel/grand-hotel_123_01_1600w.avif": b"a",
        "public/grand-hotel/grand-hotel_123_02_1600w.avif": b"bb",
    })

    reordered = service.reorder("Grand Hotel", [
        "public/grand-hotel/grand-hotel_123_02_1600w.avif",
        "public/grand-hotel/grand-hotel_123_01_1600w.avif",
    ])
    synced = service.folder_sync(EXTERNAL_ID)

    assert (reordered.changed, reordered.count) == (True, 2)
    assert store.download("public/grand-hotel/grand-hotel_123_01_1600w.avif") == b"bb"
    assert synced.copied_to_originals == 2
