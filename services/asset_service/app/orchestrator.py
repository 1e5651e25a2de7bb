# services/asset_service/app/orchestrator.py
"""
Upload orchestration for one user-initiated image upload.

    IDLE → VALIDATING → UPLOADING → (LINKING) → DONE
                 ↓          ↻ ↓          ↓
               FAILED ← ─ ─ ─ ┴ ─ ─ ─ ─ ─ ┘

UPLOADING loops on itself once per retry until the attempt budget is spent.
Every run ends in DONE or FAILED; one orchestrator instance serves one upload.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from core.config import Settings, logger as core_logger
from core.models import AssetFile, AssetProfile, AssetRef, UploadResult, UploadStage
from core.utils import is_valid_uuid
from . import crud
from .errors import AssetError, DbUpdateError, InvalidOwnerId, UploadError
from .reclaimer import OrphanReclaimer
from .uploader import StorageUploader
from .validation import validate

logger = core_logger.getChild("AssetService").getChild("Orchestrator")

ProgressCallback = Callable[[int, str], Any]
SleepFunction = Callable[[float], Awaitable[Any]]

# Coarse progress checkpoints, in percent
PROGRESS_STARTED = 10
PROGRESS_VALIDATED = 30
PROGRESS_PER_RETRY = 20
PROGRESS_LINKING = 90
PROGRESS_DONE = 100

UPLOAD_TRANSITIONS: Dict[UploadStage, Set[UploadStage]] = {
    UploadStage.IDLE: {UploadStage.VALIDATING},
    UploadStage.VALIDATING: {UploadStage.UPLOADING, UploadStage.FAILED},
    UploadStage.UPLOADING: {UploadStage.UPLOADING, UploadStage.LINKING, UploadStage.DONE, UploadStage.FAILED},
    UploadStage.LINKING: {UploadStage.DONE, UploadStage.FAILED},
    UploadStage.DONE: set(),
    UploadStage.FAILED: set(),
}


class InvalidTransition(RuntimeError):
    pass


@dataclass
class RetryPolicy:
    """Bounded attempts with a fixed delay between them."""
    max_attempts: int = 3
    delay_seconds: float = 1.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(max_attempts=max(1, settings.UPLOAD_MAX_ATTEMPTS), delay_seconds=settings.UPLOAD_RETRY_DELAY_SECONDS)

    def can_retry(self, attempt: int) -> bool:
        return attempt < self.max_attempts


@dataclass
class UploadOrchestrator:
    profile: AssetProfile
    uploader: StorageUploader
    reclaimer: OrphanReclaimer
    policy: RetryPolicy = field(default_factory=RetryPolicy)
    sleep: SleepFunction = asyncio.sleep
    progress_callback: Optional[ProgressCallback] = None
    compensate_on_link_failure: bool = False

    state: UploadStage = field(default=UploadStage.IDLE, init=False)
    attempts: int = field(default=0, init=False)
    progress: int = field(default=0, init=False)
    history: List[UploadStage] = field(default_factory=list, init=False)

    def _transition(self, new_state: UploadStage) -> None:
        if new_state not in UPLOAD_TRANSITIONS[self.state]:
            raise InvalidTransition(f"Invalid upload transition: {self.state.value} -> {new_state.value}")
        logger.debug(f"[{self.profile.kind.value}] {self.state.value} -> {new_state.value}")
        self.history.append(self.state)
        self.state = new_state

    def _report(self, percent: int, description: str) -> None:
        self.progress = percent
        if self.progress_callback:
            try:
                self.progress_callback(percent, description)
            except Exception as e:
                logger.warning(f"Progress callback raised, ignoring: {e}")

    def _fail(self, error_code: str, title: str, message: str,
              owner_id: Optional[str], asset: Optional[AssetRef] = None) -> UploadResult:
        self._transition(UploadStage.FAILED)
        self._report(0, title)
        return UploadResult(
            status="error", stage=self.state, kind=self.profile.kind, owner_id=owner_id,
            url=asset.url if asset else None, key=asset.key if asset else None,
            attempts=self.attempts, progress=self.progress, linked=False,
            error_code=error_code, title=title, message=message,
        )

    async def _upload_with_retry(self, file: AssetFile, job_prefix: str) -> AssetRef:
        """UPLOADING state: one uploader call per attempt, fixed delay in between."""
        while True:
            self.attempts += 1
            self._report(PROGRESS_VALIDATED + (self.attempts - 1) * PROGRESS_PER_RETRY,
                         f"Uploading (attempt {self.attempts}/{self.policy.max_attempts})...")
            try:
                return await self.uploader.upload(self.profile, file)
            except UploadError as e:
                logger.warning(f"{job_prefix} Upload attempt {self.attempts}/{self.policy.max_attempts} failed: {e}")
                if not self.policy.can_retry(self.attempts):
                    raise UploadError(f"{e.message}. Please check your connection and try again.") from e
            await self.sleep(self.policy.delay_seconds)
            self._transition(UploadStage.UPLOADING)

    async def run(self, file: Optional[AssetFile], owner_id: Optional[str] = None) -> UploadResult:
        if self.state != UploadStage.IDLE:
            raise InvalidTransition("An orchestrator runs exactly one upload")
        job_prefix = f"[{self.profile.kind.value}:{owner_id or 'unlinked'}]"
        asset: Optional[AssetRef] = None

        try:
            # --- Validating ---
            self._transition(UploadStage.VALIDATING)
            self._report(PROGRESS_STARTED, "Validating file...")
            result = validate(file, self.profile)
            if not result.ok:
                logger.info(f"{job_prefix} Rejected before upload: {result.error_code} ({result.message})")
                return self._fail(result.error_code, result.title, result.message, owner_id)
            if owner_id is not None and not is_valid_uuid(owner_id):
                logger.info(f"{job_prefix} Rejected before upload: invalid owner ID.")
                error = InvalidOwnerId(f"Invalid {self.profile.kind.value} ID: {owner_id}")
                return self._fail(error.code, error.title, error.message, owner_id)
            self._report(PROGRESS_VALIDATED, "File validated.")

            # --- Uploading ---
            self._transition(UploadStage.UPLOADING)
            await self.uploader.ensure_bucket(self.profile)
            try:
                asset = await self._upload_with_retry(file, job_prefix)
            except UploadError as e:
                logger.error(f"{job_prefix} Upload failed after {self.attempts} attempts.")
                return self._fail(e.code, e.title, e.message, owner_id)

            # --- Linking ---
            if owner_id:
                self._transition(UploadStage.LINKING)
                self._report(PROGRESS_LINKING, "Updating record...")
                try:
                    await crud.link(self.profile, owner_id, asset, self.reclaimer,
                                    client_factory=self.uploader.client_factory)
                except DbUpdateError as e:
                    logger.warning(f"{job_prefix} Image uploaded but database update failed: {e}")
                    if self.compensate_on_link_failure:
                        self.reclaimer.schedule(asset.url, self.profile)
                    return self._fail(e.code, e.title, e.message, owner_id, asset)

            self._transition(UploadStage.DONE)
            self._report(PROGRESS_DONE, "Upload complete.")
            logger.info(f"{job_prefix} Upload complete after {self.attempts} attempt(s): {asset.url}")
            return UploadResult(
                status="success", stage=self.state, kind=self.profile.kind, owner_id=owner_id,
                url=asset.url, key=asset.key, attempts=self.attempts, progress=self.progress,
                linked=bool(owner_id), title="Upload successful",
                message="Image has been successfully uploaded",
            )
        except InvalidTransition:
            raise
        except Exception as e:
            logger.error(f"{job_prefix} Unexpected error during upload workflow: {e}", exc_info=True)
            if self.state in (UploadStage.DONE, UploadStage.FAILED):
                raise
            error = AssetError(f"Unknown error during upload: {e}")
            return self._fail(error.code, error.title, error.message, owner_id, asset)
