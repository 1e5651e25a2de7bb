# services/asset_service/app/reclaimer.py
import asyncio
from typing import Optional, Set

from core.config import logger as core_logger
from core.models import AssetProfile
from core.utils import parse_public_url
from .errors import ReclaimError
from .uploader import StorageUploader

logger = core_logger.getChild("AssetService").getChild("Reclaimer")


class OrphanReclaimer:
    """
    Best-effort deletion of assets no owner record points at anymore.

    ``schedule`` starts a background task and returns immediately; the task
    logs its failures and never raises. Pending tasks are tracked so a
    shutdown (or a test) can wait for them with ``drain``.
    """

    def __init__(self, uploader: StorageUploader):
        self._uploader = uploader
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def reclaim(self, previous_url: Optional[str], profile: Optional[AssetProfile] = None) -> bool:
        """Deletes the object behind previous_url. Returns False instead of raising."""
        parsed = parse_public_url(previous_url)
        if not parsed:
            logger.warning(f"Cannot parse storage key from URL, skipping cleanup: {previous_url}")
            return False
        bucket, key = parsed
        if profile and bucket != profile.bucket:
            # Only the profile's own bucket is ever cleaned up
            logger.warning(f"URL points outside bucket '{profile.bucket}', skipping cleanup: {previous_url}")
            return False
        try:
            await self._uploader.delete(bucket, key)
            return True
        except ReclaimError as e:
            logger.error(f"Failed to delete orphaned asset (left in storage): {e}")
        except Exception as e:
            logger.error(f"Unexpected error reclaiming {previous_url}: {e}", exc_info=True)
        return False

    def schedule(self, previous_url: Optional[str], profile: Optional[AssetProfile] = None) -> Optional[asyncio.Task]:
        """Fire-and-forget reclaim. Returns the task, or None when there is nothing to reclaim."""
        if not previous_url:
            return None
        task = asyncio.create_task(self.reclaim(previous_url, profile))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        logger.debug(f"Scheduled reclaim of {previous_url} ({len(self._pending)} pending).")
        return task

    async def drain(self) -> None:
        """Waits for every scheduled reclaim to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
