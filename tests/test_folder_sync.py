from hotel_media.exceptions import StorageError
from hotel_media.folder_sync import FolderSync


def test_copies_missing_files_both_ways(store, put):
    put({
        "originals/grand-hotel/only-original.jpg": b"o",
        "public/grand-hotel/only-public.avif": b"p",
        "public/grand-hotel/both.jpg": b"public-copy",
        "originals/grand-hotel/both.jpg": b"original-copy",
    })

    result = FolderSync(store).sync("Grand Hotel")

    assert result.to_dict() == {"slug": "grand-hotel", "copied_to_public": 1, "copied_to_originals": 1, "errors": []}
    assert store.download("public/grand-hotel/only-original.jpg") == b"o"
    assert store.download("originals/grand-hotel/only-public.avif") == b"p"
    # Files present in both tiers are never overwritten.
    assert store.download("public/grand-hotel/both.jpg") == b"public-copy"


def test_nothing_to_do_for_an_unknown_slug(store):
    result = FolderSync(store).sync("nowhere")

    assert (result.copied_to_public, result.copied_to_originals, result.errors) == (0, 0, [])


def test_failed_copy_is_reported_and_the_rest_continue(store, put, monkeypatch):
    put({
        "originals/grand-hotel/a.jpg": b"a",
        "originals/grand-hotel/b.jpg": b"b",
    })
    upload = store.upload

    def picky_upload(path, data, content_type, overwrite=False):
        if path.endswith("a.jpg"):
            raise StorageError("access denied")
        return upload(path, data, content_type, overwrite=overwrite)

    monkeypatch.setattr(store, "upload", picky_upload)

    result = FolderSync(store).sync("grand-hotel")

    assert result.copied_to_public == 1
    assert result.errors == ["a.jpg: access denied"]
    assert store.exists("public/grand-hotel/b.jpg")
