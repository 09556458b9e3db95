from __future__ import annotations

import io

import pytest
from PIL import Image

from albumcraft.domain.models import AlbumStatus, FileDescriptor
from albumcraft.exceptions import DatabaseOperationError, JobExecutionError, NotFoundError
from albumcraft.media.image_variants import VariantSettings
from albumcraft.repositories.album_repository import AlbumRepository
from albumcraft.workers.materializer import AlbumMaterializer

from tests.mocks.storage import InMemoryObjectStorage, fail_first_attempts, fail_on_file


def _files(*names: str) -> list[FileDescriptor]:
    return [
        FileDescriptor(name=name, size=4, mime_type="image/jpeg", payload=name.encode())
        for name in names
    ]


def test_materialize_uploads_files_and_reports_progress(repository: AlbumRepository) -> None:
    storage = InMemoryObjectStorage()
    materializer = AlbumMaterializer(repository=repository, storage=storage)
    progress: list[int] = []

    result = materializer.materialize(
        user_id="user-1",
        event_name="Wedding",
        album_name="Ceremony",
        files=_files("a.jpg", "b.jpg"),
        on_progress=lambda value, message: progress.append(value),
    )

    assert progress == [10, 30, 60, 90, 100]
    assert result.photo_count == 2
    assert result.file_errors == []
    assert result.album.status is AlbumStatus.COMPLETED
    assert repository.get_album(result.album.id).photo_count == 2
    album_id = result.album.id
    assert sorted(storage.objects) == [
        f"users/user-1/events/Wedding/albums/{album_id}/0000-a.jpg",
        f"users/user-1/events/Wedding/albums/{album_id}/0001-b.jpg",
    ]


def test_failed_upload_is_recorded_and_other_files_survive(repository: AlbumRepository) -> None:
    storage = InMemoryObjectStorage(fail_when=fail_on_file("b.jpg"))
    materializer = AlbumMaterializer(repository=repository, storage=storage)

    result = materializer.materialize(
        user_id="user-1",
        event_name="Wedding",
        album_name="Ceremony",
        files=_files("a.jpg", "b.jpg", "c.jpg"),
    )

    assert result.photo_count == 2
    assert [error["file"] for error in result.file_errors] == ["b.jpg"]
    assert result.album.status is AlbumStatus.COMPLETED
    assert [photo.filename for photo in repository.list_photos(result.album.id)] == [
        "a.jpg",
        "c.jpg",
    ]


def test_album_without_files_is_created_completed(repository: AlbumRepository) -> None:
    materializer = AlbumMaterializer(repository=repository, storage=InMemoryObjectStorage())
    progress: list[int] = []

    result = materializer.materialize(
        user_id="user-1",
        event_name="Wedding",
        album_name="Empty",
        files=[],
        on_progress=lambda value, message: progress.append(value),
    )

    assert progress == [10, 30, 100]
    assert result.photo_count == 0
    assert result.album.status is AlbumStatus.COMPLETED


def test_upload_retry_uses_exponential_backoff(repository: AlbumRepository) -> None:
    storage = InMemoryObjectStorage(fail_when=fail_first_attempts(2))
    delays: list[float] = []
    materializer = AlbumMaterializer(
        repository=repository,
        storage=storage,
        upload_retry_attempts=3,
        upload_retry_backoff_seconds=0.5,
        sleep=delays.append,
    )

    result = materializer.materialize(
        user_id="user-1", event_name="Wedding", album_name="Retry", files=_files("a.jpg")
    )

    assert result.photo_count == 1
    assert delays == [0.5, 1.0]
    assert len(storage.attempts) == 3


def test_finalize_failure_raises_job_execution_error(
    repository: AlbumRepository, monkeypatch: pytest.MonkeyPatch
) -> None:
    materializer = AlbumMaterializer(repository=repository, storage=InMemoryObjectStorage())

    def _broken_set_status(album_id, status):
        raise NotFoundError("album vanished")

    monkeypatch.setattr(repository, "set_status", _broken_set_status)

    with pytest.raises(JobExecutionError) as excinfo:
        materializer.materialize(
            user_id="user-1", event_name="Wedding", album_name="Lost", files=_files("a.jpg")
        )

    assert excinfo.value.album_id is not None
    assert "album vanished" in str(excinfo.value)


def _jpeg(width: int, height: int) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), (120, 160, 200)).save(buffer, format="JPEG")
    return buffer.getvalue()


def test_albums_with_the_same_name_keep_separate_objects(repository: AlbumRepository) -> None:
    storage = InMemoryObjectStorage()
    materializer = AlbumMaterializer(repository=repository, storage=storage)
    photo = [FileDescriptor(name="f.jpg", size=5, mime_type="image/jpeg", payload=b"FIRST")]
    again = [FileDescriptor(name="f.jpg", size=6, mime_type="image/jpeg", payload=b"SECOND")]

    first = materializer.materialize(
        user_id="user-1", event_name="Wedding", album_name="A", files=photo
    )
    second = materializer.materialize(
        user_id="user-1", event_name="Wedding", album_name="A", files=again
    )

    [first_photo] = repository.list_photos(first.album.id)
    [second_photo] = repository.list_photos(second.album.id)
    assert first_photo.storage_key != second_photo.storage_key
    assert storage.objects[first_photo.storage_key] == b"FIRST"
    assert storage.objects[second_photo.storage_key] == b"SECOND"


def test_image_files_get_thumbnail_and_medium_variants(repository: AlbumRepository) -> None:
    storage = InMemoryObjectStorage()
    materializer = AlbumMaterializer(
        repository=repository,
        storage=storage,
        variant_settings=VariantSettings(thumbnail_size=32, medium_long_edge=100),
    )
    payload = _jpeg(400, 200)

    result = materializer.materialize(
        user_id="user-1",
        event_name="Wedding",
        album_name="Portraits",
        files=[FileDescriptor(name="p.jpg", size=len(payload), mime_type="image/jpeg", payload=payload)],
    )

    [photo] = repository.list_photos(result.album.id)
    thumb_key = photo.storage_key.replace(".jpg", "-thumb.jpg")
    medium_key = photo.storage_key.replace(".jpg", "-medium.jpg")
    assert sorted(storage.objects) == sorted([photo.storage_key, thumb_key, medium_key])
    assert storage.objects[photo.storage_key] == payload
    assert photo.thumbnail_url == f"memory://{thumb_key}"
    with Image.open(io.BytesIO(storage.objects[thumb_key])) as thumb:
        assert thumb.size == (32, 32)
    with Image.open(io.BytesIO(storage.objects[medium_key])) as medium:
        assert medium.size == (100, 50)


def test_variants_can_be_disabled(repository: AlbumRepository) -> None:
    storage = InMemoryObjectStorage()
    materializer = AlbumMaterializer(repository=repository, storage=storage, generate_variants=False)
    payload = _jpeg(64, 64)

    result = materializer.materialize(
        user_id="user-1",
        event_name="Wedding",
        album_name="Plain",
        files=[FileDescriptor(name="p.jpg", size=len(payload), mime_type="image/jpeg", payload=payload)],
    )

    assert len(storage.objects) == 1
    assert repository.list_photos(result.album.id)[0].thumbnail_url is None


def test_photo_insert_failure_discards_stored_objects(
    repository: AlbumRepository, monkeypatch: pytest.MonkeyPatch
) -> None:
    storage = InMemoryObjectStorage()
    materializer = AlbumMaterializer(repository=repository, storage=storage)

    def _broken_create_photo(**kwargs):
        raise DatabaseOperationError("photo: database operation failed")

    monkeypatch.setattr(repository, "create_photo", _broken_create_photo)

    result = materializer.materialize(
        user_id="user-1", event_name="Wedding", album_name="Ghost", files=_files("a.jpg")
    )

    assert result.photo_count == 0
    assert [error["file"] for error in result.file_errors] == ["a.jpg"]
    assert storage.objects == {}


def test_unexpected_error_mid_loop_keeps_album_reference(
    repository: AlbumRepository, monkeypatch: pytest.MonkeyPatch
) -> None:
    storage = InMemoryObjectStorage()
    materializer = AlbumMaterializer(repository=repository, storage=storage)
    create_photo = repository.create_photo
    calls: list[str] = []

    def _create_photo_then_crash(**kwargs):
        calls.append(kwargs["file"].name)
        if len(calls) == 2:
            raise ValueError("corrupt metadata")
        return create_photo(**kwargs)

    monkeypatch.setattr(repository, "create_photo", _create_photo_then_crash)

    with pytest.raises(JobExecutionError) as excinfo:
        materializer.materialize(
            user_id="user-1",
            event_name="Wedding",
            album_name="Partial",
            files=_files("a.jpg", "b.jpg", "c.jpg"),
        )

    album_id = excinfo.value.album_id
    assert album_id is not None
    assert excinfo.value.file_errors == [{"file": "b.jpg", "error": "corrupt metadata"}]
    assert repository.get_album(album_id).status is AlbumStatus.PROCESSING
    assert [photo.filename for photo in repository.list_photos(album_id)] == ["a.jpg"]
    assert len(storage.objects) == 1
