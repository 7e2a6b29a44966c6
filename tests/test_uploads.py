import io

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

import uploads as uploads_module
from errors import NotFoundError, ValidationError
from schemas import TruckImage
from uploads import UploadManager, is_safe_segment, rebase_image_urls

PNG = b"\x89PNG\r\n\x1a\n" + b"0" * 64


def upload(name="photo.png", content_type="image/png", data=PNG):
    return UploadFile(
        file=io.BytesIO(data),
        filename=name,
        headers=Headers({"content-type": content_type}),
    )


@pytest.fixture
def manager(tmp_path):
    manager = UploadManager(tmp_path / "uploads")
    manager.ensure_directories()
    return manager


def test_directory_created_lazily_on_first_upload(manager):
    target = manager.trucks_dir / "2025-mack-anthem-a1"
    assert not target.exists()

    images = manager.save_truck_images("2025-mack-anthem-a1", [upload(), upload("side.JPG", "image/jpeg")])

    assert target.is_dir()
    assert len(images) == 2
    assert images[0]["isPrimary"] is True
    assert images[1]["isPrimary"] is False
    assert images[0]["caption"] == "Image 1"
    assert images[0]["originalName"] == "photo.png"
    assert images[0]["filename"] != "photo.png"
    assert images[0]["filename"].endswith(".png")
    assert images[1]["filename"].endswith(".jpg")
    assert images[0]["url"] == f"/uploads/trucks/2025-mack-anthem-a1/{images[0]['filename']}"
    assert (target / images[0]["filename"]).read_bytes() == PNG


def test_same_name_uploads_do_not_collide(manager):
    images = manager.save_truck_images("t1", [upload(), upload(), upload()])
    assert len({image["filename"] for image in images}) == 3


def test_captions_and_primary_index(manager):
    images = manager.save_truck_images("t1", [upload(), upload()], captions=["Front", ""], primary_index=1)
    assert [image["caption"] for image in images] == ["Front", "Image 2"]
    assert [image["isPrimary"] for image in images] == [False, True]


def test_rejects_non_image_without_writing(manager):
    with pytest.raises(ValidationError) as excinfo:
        manager.save_truck_images("t1", [upload(), upload("notes.txt", "text/plain")])
    assert excinfo.value.code == "INVALID_FILE_TYPE"
    assert not (manager.trucks_dir / "t1").exists()


def test_rejects_mismatched_mime(manager):
    with pytest.raises(ValidationError):
        manager.save_truck_images("t1", [upload("photo.png", "application/pdf")])


def test_rejects_oversized_file_without_writing(manager, monkeypatch):
    monkeypatch.setattr(uploads_module, "MAX_FILE_SIZE", 10)
    with pytest.raises(ValidationError) as excinfo:
        manager.save_truck_images("t1", [upload()])
    assert excinfo.value.code == "FILE_TOO_LARGE"
    assert not (manager.trucks_dir / "t1").exists()


def test_rejects_too_many_files(manager):
    with pytest.raises(ValidationError) as excinfo:
        manager.save_truck_images("t1", [upload() for _ in range(11)])
    assert excinfo.value.code == "TOO_MANY_FILES"


def test_rejects_empty_upload(manager):
    with pytest.raises(ValidationError) as excinfo:
        manager.save_truck_images("t1", [])
    assert excinfo.value.code == "NO_FILES"


def test_list_and_delete_single_image(manager):
    images = manager.save_truck_images("t1", [upload(), upload()])

    listed = manager.list_truck_images("t1")
    assert sorted(item["filename"] for item in listed) == sorted(image["filename"] for image in images)

    manager.delete_truck_image("t1", images[0]["filename"])
    assert [item["filename"] for item in manager.list_truck_images("t1")] == [images[1]["filename"]]

    with pytest.raises(NotFoundError):
        manager.delete_truck_image("t1", images[0]["filename"])


def test_list_for_unknown_truck_is_empty(manager):
    assert manager.list_truck_images("never-uploaded") == []


@pytest.mark.parametrize("filename", ["../trucks.json", "..", "a/b.png", "..\\x.png", "x..png"])
def test_delete_rejects_traversal_before_touching_disk(manager, monkeypatch, filename):
    touched = []
    monkeypatch.setattr(UploadManager, "truck_dir", lambda self, truck_id: touched.append(truck_id))

    with pytest.raises(ValidationError) as excinfo:
        manager.delete_truck_image("t1", filename)

    assert excinfo.value.code == "INVALID_FILENAME"
    assert touched == []


def test_delete_all_images_removes_directory(manager):
    manager.save_truck_images("t1", [upload(), upload()])

    assert manager.delete_truck_images("t1") is True
    assert not (manager.trucks_dir / "t1").exists()
    assert manager.delete_truck_images("t1") is False


def test_rename_moves_directory(manager):
    images = manager.save_truck_images("old-id", [upload(), upload()])

    assert manager.rename_truck_dir("old-id", "new-id") is True

    assert not (manager.trucks_dir / "old-id").exists()
    assert sorted(path.name for path in (manager.trucks_dir / "new-id").iterdir()) == sorted(
        image["filename"] for image in images
    )
    assert manager.rename_truck_dir("old-id", "new-id") is False


def test_rename_merges_into_existing_directory(manager):
    kept = manager.save_truck_images("new-id", [upload()])
    moved = manager.save_truck_images("old-id", [upload()])

    manager.rename_truck_dir("old-id", "new-id")

    names = {path.name for path in (manager.trucks_dir / "new-id").iterdir()}
    assert names == {kept[0]["filename"], moved[0]["filename"]}
    assert not (manager.trucks_dir / "old-id").exists()


def test_rebase_image_urls():
    images = [
        TruckImage(url="/uploads/trucks/old-id/1.png"),
        TruckImage(url="https://cdn.example.com/2.png"),
    ]
    rebase_image_urls(images, "old-id", "new-id")
    assert [image.url for image in images] == ["/uploads/trucks/new-id/1.png", "https://cdn.example.com/2.png"]


def test_truck_id_must_be_single_segment(manager):
    with pytest.raises(ValidationError):
        manager.save_truck_images("../general", [upload()])


def test_general_files(manager):
    stored = manager.save_general_files([upload("logo.webp", "image/webp")])
    assert stored[0]["url"].startswith("/uploads/general/")
    assert (manager.general_dir / stored[0]["filename"]).is_file()

    with pytest.raises(ValidationError):
        manager.save_general_files([upload() for _ in range(6)])


def test_is_safe_segment():
    assert is_safe_segment("2025-western-star-49x-wc2899")
    assert is_safe_segment("1700000000000-abcd1234.png")
    assert not is_safe_segment("")
    assert not is_safe_segment(".hidden")
    assert not is_safe_segment("../etc")
