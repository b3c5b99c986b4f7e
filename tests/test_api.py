import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.models import TokenUser

from hotel_media import views
from hotel_media.exceptions import CollisionRisk, HotelNotFound, StorageError
from hotel_media.folder_sync import FolderSyncResult
from hotel_media.ingestion import IngestionResult
from hotel_media.models import HotelMediaIndex
from hotel_media.reconciliation import GlobalReconcileResult, HotelReconcileResult
from hotel_media.reorder import ReorderResult
from hotel_media.services import DeleteResult

BASE = "/api/v1/hotel-media"


class FakeService:
    """Stands in for MediaPipelineService; `fail_with` makes every operation raise."""

    fail_with = None
    bumps = []

    def _call(self, name, result):
        if FakeService.fail_with is not None:
            raise FakeService.fail_with
        return result

    def ingest(self, external_id, images, slug=None):
        result = IngestionResult(slug=slug or "grand-hotel", external_id=external_id)
        result.statistics.update(total=len(images), succeeded=len(images))
        return self._call("ingest", result)

    def import_from_sabre(self, external_id):
        return self._call("import", IngestionResult(slug="grand-hotel", external_id=external_id))

    def reorder(self, slug, paths):
        return self._call("reorder", ReorderResult(changed=True, count=4, slug=slug, external_id="123"))

    def delete_image(self, path):
        return self._call("delete", DeleteResult(slug="grand-hotel", external_id="123", deleted=[path]))

    def folder_sync(self, external_id):
        return self._call("sync", FolderSyncResult(slug="grand-hotel"))

    def reconcile_one(self, external_id):
        return self._call("reconcile_one", HotelReconcileResult(external_id=external_id, slug="grand-hotel", created=3))

    def reconcile_all(self, dry_run=False):
        return self._call("reconcile_all", GlobalReconcileResult(dry_run=dry_run, records_processed=7))

    def index_status(self):
        return self._call("status", {"storage_file_count": 1, "unparseable_count": 0, "index_record_count": 1, "needs_sync": False})

    def get_version(self, slug=None, external_id=None):
        return self._call("get_version", 4)

    def bump_version(self, slug=None, external_id=None):
        FakeService.bumps.append(slug)
        return self._call("bump_version", 5)


class FakePublisher:
    def __init__(self):
        self.events = []

    def publish_media_changed(self, **event):
        self.events.append(event)


@pytest.fixture
def publisher(monkeypatch):
    FakeService.fail_with = None
    FakeService.bumps = []
    fake = FakePublisher()
    monkeypatch.setattr(views, "MediaPipelineService", FakeService)
    monkeypatch.setattr(views, "media_event_publisher", fake)
    return fake


@pytest.fixture
def client():
    api_client = APIClient()
    api_client.force_authenticate(user=TokenUser({"user_id": 1}))
    return api_client


def test_requests_need_a_token():
    response = APIClient().get(f"{BASE}/index/status/")

    assert response.status_code == 401


def test_ingest_announces_the_change(client, publisher):
    response = client.post(
        f"{BASE}/hotels/123/images/ingest/",
        {"images": [{"url": "https://photos.example.com/a.jpg"}]},
        format="json",
    )

    assert response.status_code == 200
    assert response.data["statistics"]["succeeded"] == 1
    assert response.data["version"] == 5
    assert publisher.events == [{"external_id": "123", "slug": "grand-hotel", "action": "ingested", "version": 5}]


def test_ingest_validates_the_payload(client, publisher):
    response = client.post(f"{BASE}/hotels/123/images/ingest/", {"images": [{"url": "not a url"}]}, format="json")

    assert response.status_code == 400
    assert publisher.events == []


def test_import_without_new_images_announces_nothing(client, publisher):
    response = client.post(f"{BASE}/hotels/123/images/import-sabre/")

    assert response.status_code == 200
    assert "version" not in response.data
    assert publisher.events == []


def test_reorder(client, publisher):
    response = client.post(
        f"{BASE}/images/reorder/",
        {"slug": "grand-hotel", "ordered_paths": ["public/grand-hotel/grand-hotel_123_02_1600w.avif"]},
        format="json",
    )

    assert response.status_code == 200
    assert response.data == {"changed": True, "count": 4, "slug": "grand-hotel", "external_id": "123", "version": 5}
    assert publisher.events[0]["action"] == "reordered"


def test_validation_errors_keep_their_message(client, publisher):
    FakeService.fail_with = CollisionRisk("Two of the listed images share a sequence number.")

    response = client.post(
        f"{BASE}/images/reorder/", {"slug": "grand-hotel", "ordered_paths": ["x"]}, format="json",
    )

    assert response.status_code == 400
    assert "share a sequence number" in str(response.data["error"])
    assert publisher.events == []


def test_storage_failures_do_not_leak_details(client, publisher):
    FakeService.fail_with = StorageError("s3://secret-bucket/key: AccessDenied")

    response = client.post(f"{BASE}/hotels/123/images/sync-folders/")

    assert response.status_code == 503
    assert "secret-bucket" not in str(response.data)


def test_unexpected_errors_become_500(client, publisher):
    FakeService.fail_with = RuntimeError("boom")

    response = client.post(f"{BASE}/hotels/123/index/reconcile/")

    assert response.status_code == 500
    assert "boom" not in str(response.data)


def test_unknown_hotel_is_404(client, publisher):
    FakeService.fail_with = HotelNotFound()

    response = client.post(f"{BASE}/hotels/999/images/import-sabre/")

    assert response.status_code == 404


def test_delete_reads_the_path_from_the_query(client, publisher):
    path = "public/grand-hotel/grand-hotel_123_01_1600w.avif"

    response = client.delete(f"{BASE}/images/?path={path}")

    assert response.status_code == 200
    assert response.data["deleted"] == [path]
    assert publisher.events[0]["action"] == "deleted"


def test_folder_sync_with_nothing_copied_keeps_the_version(client, publisher):
    response = client.post(f"{BASE}/hotels/123/images/sync-folders/")

    assert response.status_code == 200
    assert FakeService.bumps == []


def test_reconcile_all_and_status(client, publisher):
    sweep = client.post(f"{BASE}/index/reconcile/", {"dry_run": True}, format="json")
    status = client.get(f"{BASE}/index/status/")

    assert sweep.data["dry_run"] is True
    assert sweep.data["records_processed"] == 7
    assert status.data["needs_sync"] is False


def test_versions(client, publisher):
    assert client.get(f"{BASE}/versions/?slug=grand-hotel").data == {"slug": "grand-hotel", "version": 4}
    assert client.post(f"{BASE}/versions/", {"external_id": "123"}, format="json").data == {"external_id": "123", "version": 5}
    assert client.get(f"{BASE}/versions/").status_code == 400


@pytest.mark.django_db
def test_list_hotel_images(client):
    HotelMediaIndex.objects.create(
        external_id="123", slug="grand-hotel", file_name="grand-hotel_123_01.jpg",
        file_path="originals/grand-hotel/grand-hotel_123_01.jpg",
        storage_path="originals/grand-hotel/grand-hotel_123_01.jpg",
        public_url="https://cdn.example.com/hotel-media/originals/grand-hotel/grand-hotel_123_01.jpg",
        file_type="image/jpeg", file_size=10, sequence=1,
    )

    response = client.get(f"{BASE}/hotels/123/images/")

    assert response.status_code == 200
    assert [row["sequence"] for row in response.data] == [1]
