import io

import pytest
from django.core.files.storage import InMemoryStorage
from PIL import Image

from hotel_media.exceptions import HotelNotFound, SourceFetchError
from hotel_media.object_store import ObjectStoreClient
from hotel_media.versions import VersionCounter
from hotel_media_internals.clients import HotelRef

SLUG = "grand-hotel"
EXTERNAL_ID = "123"


def make_png(width=40, height=20, color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


class FakeFetcher:
    """Serves canned bytes per URL; unknown URLs fail like an unreachable host."""

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []

    def fetch(self, url):
        self.calls.append(url)
        response = self.responses.get(url)
        if response is None:
            raise SourceFetchError("source answered HTTP 404")
        if isinstance(response, Exception):
            raise response
        return response


class FakeDirectory:
    def __init__(self, hotels=None):
        self.hotels = hotels if hotels is not None else {EXTERNAL_ID: "Grand Hotel"}
        self.lookups = []

    def get_hotel(self, external_id):
        self.lookups.append(external_id)
        if external_id not in self.hotels:
            raise HotelNotFound()
        return HotelRef(external_id=external_id, slug=self.hotels[external_id])


@pytest.fixture
def storage():
    return InMemoryStorage(base_url="https://cdn.example.com/hotel-media/")


@pytest.fixture
def store(storage):
    return ObjectStoreClient(storage=storage)


@pytest.fixture
def put(store):
    """Writes objects straight into storage: put({"public/x/a.png": b"..."})."""
    def _put(objects):
        for path, data in objects.items():
            store.upload(path, data, "application/octet-stream", overwrite=True)
    return _put


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def directory():
    return FakeDirectory()


@pytest.fixture(autouse=True)
def fresh_version_table_check():
    VersionCounter.reset_table_check()
    yield
    VersionCounter.reset_table_check()
