# tests/test_services/test_mutation_service.py
import pytest

from mediavault.core.config import Settings
from mediavault.core.exceptions import (
    AuthorizationError,
    ConflictError,
    ErrorCode,
    ExtensionChangeNotAllowed,
    NotFoundError,
    StoreError,
    ValidationError,
)
from mediavault.schemas.media import DeleteMediaRequest, RenameMediaRequest
from mediavault.services.mutation_service import MutationService

USER = "u1"
BASE = "uploads/u1/visual/2025/01/01/g1"
VIS = f"{BASE}/vacation.mp4"
VIS_THUMB = f"{BASE}/thumbnail/vacation.jpg"
AUD = "uploads/u1/audio/2025/01/01/g2/song.mp3"
FOREIGN = "uploads/u2/visual/2025/01/01/g9/clip.mp4"


def _is_thumb(key: str) -> bool:
    return "/thumbnail/" in key


@pytest.fixture()
def service(store):
    return MutationService(store, config=Settings(_env_file=None, S3_BUCKET_NAME="test-bucket"))


@pytest.fixture()
def seeded(store):
    store.put(VIS, content_type="video/mp4", metadata={"userid": USER, "originalfilename": "vacation.mp4"})
    store.put(VIS_THUMB, content_type="image/jpeg")
    store.put(AUD, content_type="audio/mpeg")
    return store


def _rename(key, name):
    return RenameMediaRequest(file_key=key, new_filename=name)


# ─────────────────────────────────────────────────────────────
# 🗑️ Delete
# ─────────────────────────────────────────────────────────────
@pytest.mark.anyio
async def test_delete_visual_cascades_to_thumbnail(service, seeded):
    result = await service.delete_media(DeleteMediaRequest(file_keys=[VIS]), USER)
    assert result.deleted == [VIS] and result.failed == []
    assert result.total_requested == 1 and result.success_count == 1 and result.failure_count == 0
    assert VIS not in seeded.objects and VIS_THUMB not in seeded.objects
    assert [a[0] for a in seeded.called("delete_object")] == [VIS, VIS_THUMB]


@pytest.mark.anyio
async def test_delete_audio_touches_only_primary(service, seeded):
    await service.delete_media(DeleteMediaRequest(file_keys=[AUD]), USER)
    assert [a[0] for a in seeded.called("delete_object")] == [AUD]


@pytest.mark.anyio
async def test_delete_thumbnail_key_does_not_cascade(service, seeded):
    await service.delete_media(DeleteMediaRequest(file_keys=[VIS_THUMB]), USER)
    assert [a[0] for a in seeded.called("delete_object")] == [VIS_THUMB]
    assert VIS in seeded.objects


@pytest.mark.anyio
async def test_delete_missing_object_is_success(service, store):
    result = await service.delete_media(DeleteMediaRequest(file_keys=[AUD]), USER)
    assert result.deleted == [AUD]


@pytest.mark.anyio
async def test_delete_thumbnail_failure_reports_primary_deleted(service, seeded):
    seeded.fail_on("delete_object", when=_is_thumb)
    result = await service.delete_media(DeleteMediaRequest(file_keys=[VIS]), USER)

    assert result.deleted == []
    assert len(result.failed) == 1
    failure = result.failed[0]
    assert failure.file_key == VIS and failure.primary_deleted is True
    assert failure.error.startswith("Primary deleted but thumbnail removal failed")
    assert VIS not in seeded.objects and VIS_THUMB in seeded.objects


@pytest.mark.anyio
async def test_delete_failures_are_isolated_per_key(service, seeded):
    seeded.fail_on("delete_object", when=lambda k: k == AUD)
    result = await service.delete_media(DeleteMediaRequest(file_keys=[VIS, AUD]), USER)

    assert result.deleted == [VIS]
    assert [(f.file_key, f.primary_deleted) for f in result.failed] == [(AUD, False)]
    assert result.success_count == 1 and result.failure_count == 1
    assert AUD in seeded.objects


@pytest.mark.anyio
async def test_delete_foreign_key_blocks_whole_batch(service, seeded):
    with pytest.raises(AuthorizationError) as exc:
        await service.delete_media(DeleteMediaRequest(file_keys=[VIS, FOREIGN]), USER)
    assert exc.value.details == {"indexes": [1]}
    assert seeded.calls == []


@pytest.mark.anyio
async def test_delete_invalid_keys_are_reported_together(service, seeded):
    with pytest.raises(ValidationError) as exc:
        await service.delete_media(
            DeleteMediaRequest(file_keys=[VIS, "uploads/u1/../u2/x.mp4", "nope"]), USER
        )
    assert exc.value.code is ErrorCode.INVALID_KEY
    assert [p["index"] for p in exc.value.details["validationErrors"]] == [1, 2]
    assert seeded.calls == []


@pytest.mark.anyio
async def test_delete_requires_keys(service):
    with pytest.raises(ValidationError) as exc:
        await service.delete_media(DeleteMediaRequest(file_keys=[]), USER)
    assert exc.value.code is ErrorCode.MISSING_REQUIRED_FIELD


# ─────────────────────────────────────────────────────────────
# ✏️ Rename
# ─────────────────────────────────────────────────────────────
@pytest.mark.anyio
async def test_rename_moves_primary_and_thumbnail(service, seeded):
    result = await service.rename_media(_rename(VIS, "holiday.mp4"), USER)

    new_key = f"{BASE}/holiday.mp4"
    new_thumb = f"{BASE}/thumbnail/holiday.jpg"
    assert result.old_key == VIS and result.new_key == new_key
    assert result.filename == "holiday.mp4"
    assert new_key in result.url
    assert result.thumbnail_url is not None and new_thumb in result.thumbnail_url

    assert set(seeded.objects) == {new_key, new_thumb, AUD}
    moved = seeded.objects[new_key]
    assert moved["metadata"]["originalfilename"] == "holiday.mp4"
    assert moved["metadata"]["userid"] == USER
    assert moved["content_type"] == "video/mp4"


@pytest.mark.anyio
async def test_rename_copies_everything_before_deleting(service, seeded):
    await service.rename_media(_rename(VIS, "holiday.mp4"), USER)
    mutations = [name for name, _ in seeded.calls if name in ("copy_object", "delete_object")]
    assert mutations == ["copy_object", "copy_object", "delete_object", "delete_object"]


@pytest.mark.anyio
async def test_rename_same_stem_keeps_thumbnail_in_place(service, seeded):
    result = await service.rename_media(_rename(VIS, "vacation.MP4"), USER)

    assert result.new_key == f"{BASE}/vacation.MP4"
    assert VIS_THUMB in seeded.objects
    assert result.thumbnail_url is not None and VIS_THUMB in result.thumbnail_url
    assert [a[0] for a in seeded.called("copy_object")] == [VIS]
    assert [a[0] for a in seeded.called("delete_object")] == [VIS]


@pytest.mark.anyio
async def test_rename_without_thumbnail(service, store):
    store.put(VIS, content_type="video/mp4")
    result = await service.rename_media(_rename(VIS, "holiday.mp4"), USER)
    assert result.thumbnail_url is None
    assert set(store.objects) == {f"{BASE}/holiday.mp4"}


@pytest.mark.anyio
async def test_rename_audio_has_no_thumbnail_handling(service, seeded):
    result = await service.rename_media(_rename(AUD, "tune.mp3"), USER)
    assert result.thumbnail_url is None
    assert not any(_is_thumb(a[0]) for a in seeded.called("head_object"))


@pytest.mark.anyio
async def test_rename_rejects_extension_change_before_store_calls(service, seeded):
    with pytest.raises(ExtensionChangeNotAllowed) as exc:
        await service.rename_media(_rename(VIS, "holiday.mov"), USER)
    assert exc.value.code is ErrorCode.EXTENSION_CHANGE_NOT_ALLOWED
    assert exc.value.status_code == 400
    assert seeded.calls == []


@pytest.mark.anyio
@pytest.mark.parametrize("name", ["sub/holiday.mp4", "../holiday.mp4", "evil.exe", ""])
async def test_rename_rejects_bad_names(service, seeded, name):
    with pytest.raises(ValidationError):
        await service.rename_media(_rename(VIS, name), USER)
    assert seeded.calls == []


@pytest.mark.anyio
async def test_rename_rejects_thumbnail_key(service, seeded):
    with pytest.raises(ValidationError) as exc:
        await service.rename_media(_rename(VIS_THUMB, "other.jpg"), USER)
    assert exc.value.code is ErrorCode.INVALID_KEY


@pytest.mark.anyio
async def test_rename_foreign_key_is_forbidden(service, store):
    store.put(FOREIGN)
    with pytest.raises(AuthorizationError):
        await service.rename_media(_rename(FOREIGN, "mine.mp4"), USER)
    assert store.calls == []


@pytest.mark.anyio
async def test_rename_conflict(service, seeded):
    seeded.put(f"{BASE}/holiday.mp4")
    with pytest.raises(ConflictError):
        await service.rename_media(_rename(VIS, "holiday.mp4"), USER)
    assert seeded.called("copy_object") == []


@pytest.mark.anyio
async def test_rename_missing_source(service, store):
    with pytest.raises(NotFoundError):
        await service.rename_media(_rename(VIS, "holiday.mp4"), USER)
    assert store.called("copy_object") == []


@pytest.mark.anyio
async def test_rename_primary_copy_failure_keeps_original(service, seeded):
    seeded.fail_on("copy_object")
    with pytest.raises(StoreError):
        await service.rename_media(_rename(VIS, "holiday.mp4"), USER)
    assert VIS in seeded.objects and VIS_THUMB in seeded.objects
    assert seeded.called("delete_object") == []


@pytest.mark.anyio
async def test_rename_thumbnail_copy_failure_removes_new_primary(service, seeded):
    seeded.fail_on("copy_object", when=_is_thumb)
    with pytest.raises(StoreError):
        await service.rename_media(_rename(VIS, "holiday.mp4"), USER)

    assert set(seeded.objects) == {VIS, VIS_THUMB, AUD}
    assert [a[0] for a in seeded.called("delete_object")] == [f"{BASE}/holiday.mp4"]


@pytest.mark.anyio
async def test_rename_delete_failure_still_succeeds_with_duplicate(service, seeded):
    seeded.fail_on("delete_object")
    result = await service.rename_media(_rename(VIS, "holiday.mp4"), USER)

    assert result.new_key == f"{BASE}/holiday.mp4"
    assert {VIS, VIS_THUMB, f"{BASE}/holiday.mp4", f"{BASE}/thumbnail/holiday.jpg"} <= set(seeded.objects)
