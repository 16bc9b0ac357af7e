# tests/test_services/test_validation.py
import pytest

from mediavault.core.config import Settings
from mediavault.core.exceptions import AuthorizationError, ErrorCode, InvalidKey, ValidationError
from mediavault.schemas.media import (
    CompleteUploadRequest,
    FileDescriptor,
    InitiateUploadRequest,
    MediaCategory,
    MediaFileGroup,
    PartDescriptor,
)
from mediavault.services.validation_service import ValidationService

ETAG_A = "a" * 32
ETAG_B = "b" * 32
KEY = "uploads/user_123/visual/2025/01/15/0b8c7a4e-1f2d-4c3b-9a8e-7d6c5b4a3f21/holiday.mp4"
FILE_ID = "0b8c7a4e-1f2d-4c3b-9a8e-7d6c5b4a3f21"


@pytest.fixture()
def validator():
    return ValidationService(Settings(_env_file=None, S3_BUCKET_NAME="test-bucket"))


def _file(name="holiday.mp4", ctype="video/mp4", size=1024):
    return FileDescriptor(filename=name, file_type=ctype, file_size=size)


def _parts(*pairs):
    return [PartDescriptor(part_number=n, etag=e) for n, e in pairs]


# ─────────────────────────────────────────────────────────────────────────────
# Initiation (accumulating)
# ─────────────────────────────────────────────────────────────────────────────
def test_initiate_accepts_groups_and_derives_category(validator):
    req = InitiateUploadRequest(
        files=[
            MediaFileGroup(main=_file(), thumbnail=_file("cover.jpg", "image/jpeg", 2048)),
            MediaFileGroup(main=_file("song.mp3", "audio/mpeg")),
        ]
    )
    groups = validator.validate_initiate(req)
    assert [g.category for g in groups] == [MediaCategory.VISUAL, MediaCategory.AUDIO]
    assert groups[0].thumbnail.filename == "cover.jpg"
    assert groups[1].thumbnail is None


@pytest.mark.parametrize("files", [None, []])
def test_initiate_requires_files(validator, files):
    with pytest.raises(ValidationError) as exc:
        validator.validate_initiate(InitiateUploadRequest(files=files))
    assert exc.value.code is ErrorCode.MISSING_REQUIRED_FIELD


def test_initiate_rejects_too_many_files(validator):
    req = InitiateUploadRequest(files=[MediaFileGroup(main=_file()) for _ in range(11)])
    with pytest.raises(ValidationError) as exc:
        validator.validate_initiate(req)
    assert exc.value.code is ErrorCode.TOO_MANY_FILES


def test_initiate_oversized_file_reports_file_too_large(validator):
    big = validator.settings.MAX_FILE_SIZE + 1
    with pytest.raises(ValidationError) as exc:
        validator.validate_initiate(InitiateUploadRequest(files=[MediaFileGroup(main=_file(size=big))]))
    assert exc.value.code is ErrorCode.FILE_TOO_LARGE
    [problem] = exc.value.details["validationErrors"]
    assert problem["index"] == 0 and problem["target"] == "main"


def test_initiate_accumulates_every_problem(validator):
    req = InitiateUploadRequest(
        files=[
            MediaFileGroup(main=_file("virus.exe", "application/x-msdownload", 0)),
            MediaFileGroup(main=_file()),
            MediaFileGroup(main=_file("song.mp3", "audio/mpeg"), thumbnail=_file("c.jpg", "image/jpeg")),
            MediaFileGroup(main=_file(), thumbnail=_file("c.png", "image/png")),
            MediaFileGroup(main=None),
        ]
    )
    with pytest.raises(ValidationError) as exc:
        validator.validate_initiate(req)

    err = exc.value
    assert err.code is ErrorCode.INVALID_REQUEST  # mixed codes
    problems = err.details["validationErrors"]
    codes_by_index = {}
    for p in problems:
        codes_by_index.setdefault(p["index"], set()).add(p["code"])

    assert codes_by_index[0] == {"INVALID_FILENAME", "INVALID_FILE_TYPE", "FILE_TOO_SMALL"}
    assert 1 not in codes_by_index
    assert codes_by_index[2] == {"INVALID_REQUEST"}
    assert codes_by_index[3] == {"INVALID_FILE_TYPE"}
    assert codes_by_index[4] == {"MISSING_REQUIRED_FIELD"}


def test_initiate_rejects_slash_in_primary_name(validator):
    with pytest.raises(ValidationError) as exc:
        validator.validate_initiate(InitiateUploadRequest(files=[MediaFileGroup(main=_file("nested/clip.mp4"))]))
    assert exc.value.code is ErrorCode.INVALID_FILENAME


# ─────────────────────────────────────────────────────────────────────────────
# Completion (fail-fast)
# ─────────────────────────────────────────────────────────────────────────────
def _complete(**overrides):
    body = {
        "file_id": FILE_ID,
        "storage_key": KEY,
        "session_id": "session-0123456789",
        "parts": _parts((1, ETAG_A), (2, ETAG_B)),
    }
    body.update(overrides)
    return CompleteUploadRequest(**body)


def test_complete_accepts_valid_request_and_strips_quotes(validator):
    v = validator.validate_complete(_complete(parts=_parts((1, f'"{ETAG_A}"'), (2, ETAG_B))), "user_123")
    assert v.parts == [{"PartNumber": 1, "ETag": ETAG_A}, {"PartNumber": 2, "ETag": ETAG_B}]
    assert v.storage_key == KEY


@pytest.mark.parametrize("file_id", ["not-a-uuid", "0b8c7a4e1f2d4c3b9a8e7d6c5b4a3f21", "{" + FILE_ID + "}"])
def test_complete_rejects_bad_file_id(validator, file_id):
    with pytest.raises(ValidationError) as exc:
        validator.validate_complete(_complete(file_id=file_id), "user_123")
    assert exc.value.code is ErrorCode.INVALID_FILE_ID


def test_complete_checks_key_then_owner(validator):
    with pytest.raises(InvalidKey):
        validator.validate_complete(_complete(storage_key="uploads/../x.mp4"), "user_123")
    with pytest.raises(AuthorizationError):
        validator.validate_complete(_complete(), "user_456")


def test_complete_order_is_fail_fast(validator):
    # Bad file id wins over a bad key and bad parts.
    with pytest.raises(ValidationError) as exc:
        validator.validate_complete(_complete(file_id="x", storage_key="bad", parts=[]), "user_123")
    assert exc.value.code is ErrorCode.INVALID_FILE_ID


@pytest.mark.parametrize("session_id", ["short", "x" * 1025])
def test_complete_rejects_bad_session_id(validator, session_id):
    with pytest.raises(ValidationError) as exc:
        validator.validate_complete(_complete(session_id=session_id), "user_123")
    assert exc.value.code is ErrorCode.INVALID_UPLOAD_ID


@pytest.mark.parametrize(
    "parts",
    [
        [],
        _parts((2, ETAG_A), (1, ETAG_B)),
        _parts((1, ETAG_A), (3, ETAG_B)),
        _parts((1, ETAG_A), (1, ETAG_B)),
        _parts((2, ETAG_A)),
        _parts((0, ETAG_A)),
        _parts((10_001, ETAG_A)),
        _parts((1, "short")),
        _parts((1, '""')),
        [PartDescriptor(part_number=1)],
        [PartDescriptor(etag=ETAG_A)],
    ],
)
def test_parts_rejected(validator, parts):
    with pytest.raises(ValidationError) as exc:
        validator.validate_parts(parts)
    assert exc.value.code is ErrorCode.INVALID_PARTS


def test_parts_accepted():
    assert ValidationService.validate_parts(_parts((1, ETAG_A))) == [{"PartNumber": 1, "ETag": ETAG_A}]


# ─────────────────────────────────────────────────────────────────────────────
# Catalog & mutations
# ─────────────────────────────────────────────────────────────────────────────
@pytest.mark.parametrize("limit", [0, 1001, -5])
def test_limit_bounds(validator, limit):
    with pytest.raises(ValidationError):
        validator.validate_limit(limit)


def test_limit_default(validator):
    assert validator.validate_limit(None) == 50
    assert validator.validate_limit(1000) == 1000


@pytest.mark.parametrize("query", [None, "", "   ", "q" * 256])
def test_query_bounds(validator, query):
    with pytest.raises(ValidationError):
        validator.validate_query(query)


def test_delete_keys_shape_then_ownership(validator):
    foreign = KEY.replace("user_123", "user_456")
    with pytest.raises(ValidationError) as exc:
        validator.validate_delete_keys([KEY, "bad-key", foreign], "user_123")
    assert exc.value.code is ErrorCode.INVALID_KEY
    assert [p["index"] for p in exc.value.details["validationErrors"]] == [1]

    with pytest.raises(AuthorizationError) as exc:
        validator.validate_delete_keys([KEY, foreign], "user_123")
    assert exc.value.details == {"indexes": [1]}


def test_delete_keys_limits(validator):
    with pytest.raises(ValidationError):
        validator.validate_delete_keys([], "user_123")
    with pytest.raises(ValidationError) as exc:
        validator.validate_delete_keys([KEY] * 101, "user_123")
    assert exc.value.code is ErrorCode.TOO_MANY_FILES


def test_rename_target_rejects_slash(validator):
    assert validator.validate_rename_target(" new name.mp4 ") == "new name.mp4"
    with pytest.raises(ValidationError):
        validator.validate_rename_target("thumbnail/new.mp4")
