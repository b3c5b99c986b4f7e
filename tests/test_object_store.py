import pytest

from hotel_media.exceptions import ObjectExists, RelocationError, StorageError
from hotel_media.object_store import ObjectStoreClient


def test_upload_download_and_exists(store):
    store.upload("public/grand-hotel/a.png", b"abc", "image/png")

    assert store.exists("public/grand-hotel/a.png")
    assert store.download("public/grand-hotel/a.png") == b"abc"
    assert store.download("public/grand-hotel/missing.png") is None


def test_upload_refuses_to_overwrite_unless_asked(store):
    store.upload("public/grand-hotel/a.png", b"abc", "image/png")

    with pytest.raises(ObjectExists):
        store.upload("public/grand-hotel/a.png", b"new", "image/png")

    store.upload("public/grand-hotel/a.png", b"new", "image/png", overwrite=True)
    assert store.download("public/grand-hotel/a.png") == b"new"


def test_list_returns_direct_children_without_hidden_files(store, put):
    put({
        "public/grand-hotel/b.png": b"12345",
        "public/grand-hotel/a.png": b"1",
        "public/grand-hotel/.emptyFolderPlaceholder": b"",
        "public/grand-hotel/nested/c.png": b"1",
    })

    listing = store.list("public/grand-hotel")

    assert [(obj.name, obj.size, obj.content_type) for obj in listing] == [
        ("a.png", 1, "image/png"),
        ("b.png", 5, "image/png"),
    ]
    assert store.list("public/nowhere") == []


def test_list_folders(store, put):
    put({"public/grand-hotel/a.png": b"1", "public/sea-view/b.png": b"1"})

    assert store.list_folders("public") == ["grand-hotel", "sea-view"]
    assert store.list_folders("originals") == []


def test_remove_ignores_missing_objects(store, put):
    put({"public/grand-hotel/a.png": b"1"})

    store.remove(["public/grand-hotel/a.png", "public/grand-hotel/never-existed.png"])

    assert not store.exists("public/grand-hotel/a.png")


def test_relocate_falls_back_to_copy(store, put):
    put({"public/grand-hotel/a.png": b"payload"})

    assert store.relocate("public/grand-hotel/a.png", "public/grand-hotel/b.png") == "copy"

    assert not store.exists("public/grand-hotel/a.png")
    assert store.download("public/grand-hotel/b.png") == b"payload"


def test_relocate_names_the_failed_stage(store):
    with pytest.raises(RelocationError) as excinfo:
        store.relocate("public/grand-hotel/missing.png", "public/grand-hotel/b.png")

    assert excinfo.value.stage == "download"


def test_relocate_keeps_the_source_when_upload_fails(store, put, monkeypatch):
    put({"public/grand-hotel/a.png": b"payload"})

    def broken_upload(*args, **kwargs):
        raise StorageError("bucket is read-only")

    monkeypatch.setattr(store, "upload", broken_upload)

    with pytest.raises(RelocationError) as excinfo:
        store.relocate("public/grand-hotel/a.png", "public/grand-hotel/b.png")

    assert excinfo.value.stage == "upload"
    assert store.exists("public/grand-hotel/a.png")


def test_backend_failures_become_storage_errors(storage, monkeypatch):
    store = ObjectStoreClient(storage=storage)

    def boom(*args, **kwargs):
        raise ConnectionError("network is down")

    monkeypatch.setattr(storage, "exists", boom)

    with pytest.raises(StorageError):
        store.exists("public/grand-hotel/a.png")
    with pytest.raises(StorageError):
        store.upload("public/grand-hotel/a.png", b"1", "image/png")


def test_public_url(store):
    assert store.public_url("public/grand-hotel/a.png") == "https://cdn.example.com/hotel-media/public/grand-hotel/a.png"
