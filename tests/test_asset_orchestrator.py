import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from core.config import Settings
from core.models import AssetFile, AssetRef, OwnerKind, UploadStage
from core.storage import ASSET_PROFILES
from services.asset_service.app.errors import DbUpdateError, UploadError
from services.asset_service.app.orchestrator import (
    UploadOrchestrator, RetryPolicy, InvalidTransition, UPLOAD_TRANSITIONS
)

MB = 1024 * 1024
SLIDE_ID = "7d0c5b8e-2f4a-4e1b-8c3d-9a6b5e4f3d21"
OLD_URL = "https://proj.supabase.co/storage/v1/object/public/slides/old.png"
NEW_ASSET = AssetRef(bucket="slides", key="new.png", url="https://proj.supabase.co/storage/v1/object/public/slides/new.png")


def png(size=2 * MB):
    return AssetFile(filename="slide.png", content_type="image/png", content=b"\x89PNG" + bytes(size - 4))


@pytest.fixture
def uploader():
    mock = MagicMock()
    mock.ensure_bucket = AsyncMock()
    mock.upload = AsyncMock(return_value=NEW_ASSET)
    return mock


@pytest.fixture
def reclaimer():
    mock = MagicMock()
    mock.schedule.return_value = MagicMock()
    return mock


@pytest.fixture
def sleep():
    return AsyncMock()


def make_orchestrator(uploader, reclaimer, sleep, kind=OwnerKind.SLIDE, **kwargs):
    return UploadOrchestrator(
        profile=ASSET_PROFILES[kind], uploader=uploader, reclaimer=reclaimer,
        policy=RetryPolicy(max_attempts=3, delay_seconds=1.0), sleep=sleep, **kwargs,
    )


@pytest.mark.asyncio
async def test_unlinked_upload_succeeds_on_first_attempt(uploader, reclaimer, sleep):
    orchestrator = make_orchestrator(uploader, reclaimer, sleep)

    result = await orchestrator.run(png())

    assert result.status == "success"
    assert result.stage == UploadStage.DONE
    assert result.url == NEW_ASSET.url
    assert result.attempts == 1
    assert result.progress == 100
    assert result.linked is False
    assert result.title == "Upload successful"
    sleep.assert_not_awaited()
    uploader.ensure_bucket.assert_awaited_once_with(ASSET_PROFILES[OwnerKind.SLIDE])


@pytest.mark.asyncio
async def test_upload_retries_transient_failures(uploader, reclaimer, sleep):
    uploader.upload.side_effect = [UploadError("Error uploading file: timeout"), UploadError("Error uploading file: timeout"), NEW_ASSET]
    orchestrator = make_orchestrator(uploader, reclaimer, sleep)

    result = await orchestrator.run(png())

    assert result.status == "success"
    assert result.attempts == 3
    assert uploader.upload.await_count == 3
    assert sleep.await_count == 2
    sleep.assert_awaited_with(1.0)


@pytest.mark.asyncio
async def test_upload_gives_up_after_attempt_budget(uploader, reclaimer, sleep):
    uploader.upload.side_effect = UploadError("Error uploading file: connection reset")
    orchestrator = make_orchestrator(uploader, reclaimer, sleep)

    with patch("services.asset_service.app.orchestrator.crud.link", new_callable=AsyncMock) as mock_link:
        result = await orchestrator.run(png(), SLIDE_ID)

    assert result.status == "error"
    assert result.stage == UploadStage.FAILED
    assert result.error_code == "upload_error"
    assert result.attempts == 3
    assert result.progress == 0
    assert "Please check your connection and try again." in result.message
    assert sleep.await_count == 2
    mock_link.assert_not_awaited()


@pytest.mark.asyncio
async def test_oversized_file_fails_before_any_network_call(uploader, reclaimer, sleep):
    orchestrator = make_orchestrator(uploader, reclaimer, sleep)

    result = await orchestrator.run(AssetFile(filename="huge.jpg", content_type="image/jpeg", size=20 * MB))

    assert result.status == "error"
    assert result.error_code == "too_large"
    assert result.title == "File too large"
    assert result.attempts == 0
    uploader.ensure_bucket.assert_not_awaited()
    uploader.upload.assert_not_awaited()


@pytest.mark.asyncio
async def test_missing_file_fails_validation(uploader, reclaimer, sleep):
    result = await make_orchestrator(uploader, reclaimer, sleep).run(None)
    assert result.error_code == "missing_file"
    uploader.upload.assert_not_awaited()


@pytest.mark.asyncio
async def test_invalid_owner_id_rejected_before_upload(uploader, reclaimer, sleep):
    result = await make_orchestrator(uploader, reclaimer, sleep).run(png(), "placeholder")
    assert result.error_code == "invalid_owner_id"
    uploader.upload.assert_not_awaited()


@pytest.mark.asyncio
async def test_replacing_slide_image_links_and_reclaims_previous(uploader, reclaimer, sleep):
    rows = {SLIDE_ID: OLD_URL}

    async def fake_get(profile, owner_id, **kwargs):
        return rows[owner_id]

    async def fake_update(profile, owner_id, url, **kwargs):
        rows[owner_id] = url

    orchestrator = make_orchestrator(uploader, reclaimer, sleep)
    with patch("services.asset_service.app.crud.get_asset_reference", side_effect=fake_get), \
         patch("services.asset_service.app.crud.update_asset_reference", side_effect=fake_update):
        result = await orchestrator.run(png(), SLIDE_ID)

    assert result.status == "success"
    assert result.linked is True
    assert result.progress == 100
    assert rows[SLIDE_ID] == result.url == NEW_ASSET.url
    reclaimer.schedule.assert_called_once_with(OLD_URL, ASSET_PROFILES[OwnerKind.SLIDE])
    assert orchestrator.history == [
        UploadStage.IDLE, UploadStage.VALIDATING, UploadStage.UPLOADING, UploadStage.LINKING,
    ]


@pytest.mark.asyncio
async def test_progress_is_reported_at_each_checkpoint(uploader, reclaimer, sleep):
    uploader.upload.side_effect = [UploadError("flaky"), NEW_ASSET]
    seen = []
    orchestrator = make_orchestrator(uploader, reclaimer, sleep, progress_callback=lambda pct, _: seen.append(pct))

    with patch("services.asset_service.app.orchestrator.crud.link", new_callable=AsyncMock):
        await orchestrator.run(png(), SLIDE_ID)

    assert seen == [10, 30, 30, 50, 90, 100]


@pytest.mark.asyncio
async def test_broken_progress_callback_does_not_fail_upload(uploader, reclaimer, sleep):
    def callback(pct, description):
        raise RuntimeError("widget gone")

    result = await make_orchestrator(uploader, reclaimer, sleep, progress_callback=callback).run(png())
    assert result.status == "success"


@pytest.mark.asyncio
async def test_link_failure_reports_error_and_keeps_asset_by_default(uploader, reclaimer, sleep):
    orchestrator = make_orchestrator(uploader, reclaimer, sleep)
    with patch("services.asset_service.app.orchestrator.crud.link", new_callable=AsyncMock,
               side_effect=DbUpdateError("Failed to update slide image in database: timeout")):
        result = await orchestrator.run(png(), SLIDE_ID)

    assert result.status == "error"
    assert result.error_code == "db_update_error"
    assert result.title == "Error updating image"
    assert result.url == NEW_ASSET.url
    assert result.attempts == 1
    reclaimer.schedule.assert_not_called()


@pytest.mark.asyncio
async def test_link_failure_compensates_when_enabled(uploader, reclaimer, sleep):
    orchestrator = make_orchestrator(uploader, reclaimer, sleep, compensate_on_link_failure=True)
    with patch("services.asset_service.app.orchestrator.crud.link", new_callable=AsyncMock,
               side_effect=DbUpdateError("timeout")):
        result = await orchestrator.run(png(), SLIDE_ID)

    assert result.status == "error"
    reclaimer.schedule.assert_called_once_with(NEW_ASSET.url, ASSET_PROFILES[OwnerKind.SLIDE])


@pytest.mark.asyncio
async def test_unexpected_error_ends_in_failed_state(uploader, reclaimer, sleep):
    uploader.upload.side_effect = KeyError("boom")
    orchestrator = make_orchestrator(uploader, reclaimer, sleep)

    result = await orchestrator.run(png())

    assert result.status == "error"
    assert orchestrator.state == UploadStage.FAILED
    assert "Unknown error during upload" in result.message


@pytest.mark.asyncio
async def test_orchestrator_runs_only_once(uploader, reclaimer, sleep):
    orchestrator = make_orchestrator(uploader, reclaimer, sleep)
    await orchestrator.run(png())
    with pytest.raises(InvalidTransition):
        await orchestrator.run(png())


def test_terminal_states_have_no_exits():
    assert UPLOAD_TRANSITIONS[UploadStage.DONE] == set()
    assert UPLOAD_TRANSITIONS[UploadStage.FAILED] == set()
    assert UploadStage.UPLOADING in UPLOAD_TRANSITIONS[UploadStage.UPLOADING]


def test_retry_policy_from_settings():
    policy = RetryPolicy.from_settings(Settings(UPLOAD_MAX_ATTEMPTS=5, UPLOAD_RETRY_DELAY_SECONDS=0.25))
    assert policy.max_attempts == 5
    assert policy.delay_seconds == 0.25
    assert policy.can_retry(4) is True
    assert policy.can_retry(5) is False
    assert RetryPolicy.from_settings(Settings(UPLOAD_MAX_ATTEMPTS=0)).max_attempts == 1


@pytest.mark.asyncio
async def test_database_outage_during_link_is_a_link_failure(uploader, reclaimer, sleep):
    db = MagicMock()
    db.table.return_value.select.return_value.eq.return_value.limit.return_value.maybe_single.return_value \
        .execute.side_effect = httpx.ConnectError("db down")
    uploader.client_factory = AsyncMock(return_value=db)
    orchestrator = make_orchestrator(uploader, reclaimer, sleep, compensate_on_link_failure=True)

    result = await orchestrator.run(png(), SLIDE_ID)

    assert result.status == "error"
    assert result.error_code == "db_update_error"
    assert result.title == "Error updating image"
    assert result.url == NEW_ASSET.url
    uploader.client_factory.assert_awaited()
    reclaimer.schedule.assert_called_once_with(NEW_ASSET.url, ASSET_PROFILES[OwnerKind.SLIDE])


@pytest.mark.asyncio
async def test_link_uses_uploader_client_factory(uploader, reclaimer, sleep):
    uploader.client_factory = AsyncMock()
    orchestrator = make_orchestrator(uploader, reclaimer, sleep)
    with patch("services.asset_service.app.orchestrator.crud.link", new_callable=AsyncMock) as mock_link:
        await orchestrator.run(png(), SLIDE_ID)
    assert mock_link.call_args.kwargs["client_factory"] is uploader.client_factory
