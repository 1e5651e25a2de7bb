# services/asset_service/app/uploader.py
import asyncio
from typing import Optional, Set
from storage3.utils import StorageException

from core.config import settings as default_settings, Settings, logger as core_logger
from core.models import AssetFile, AssetProfile, AssetRef
from core.supabase_client import ClientFactory, service_client_factory
from core.utils import generate_object_key
from .errors import UploadError, ReclaimError

logger = core_logger.getChild("AssetService").getChild("Uploader")


class StorageUploader:
    """
    Thin wrapper over Supabase Storage for image assets.

    One call, one attempt: failures surface as UploadError and retrying is
    left to the orchestrator.
    """

    def __init__(self, client_factory: Optional[ClientFactory] = None, settings: Settings = default_settings):
        # Service role client built from this uploader's settings unless one is injected
        self._client_factory = client_factory or service_client_factory(settings)
        self._settings = settings
        self._ensured_buckets: Set[str] = set()

    @property
    def client_factory(self) -> ClientFactory:
        return self._client_factory

    async def ensure_bucket(self, profile: AssetProfile) -> None:
        """Creates the profile's bucket as public if it is missing. Failures are logged, not raised."""
        if not self._settings.ENSURE_BUCKETS or profile.bucket in self._ensured_buckets:
            return
        try:
            supabase = await self._client_factory()

            def bucket_call():
                try:
                    supabase.storage.get_bucket(profile.bucket)
                    return False
                except StorageException as e:
                    if "not found" not in str(e).lower():
                        raise
                supabase.storage.create_bucket(
                    profile.bucket,
                    options={
                        "public": True,
                        "allowed_mime_types": profile.allowed_types,
                        "file_size_limit": profile.max_bytes,
                    },
                )
                return True

            created = await asyncio.to_thread(bucket_call)
            if created:
                logger.info(f"Created public storage bucket '{profile.bucket}'.")
            self._ensured_buckets.add(profile.bucket)
        except Exception as e:
            # Missing permission to inspect buckets does not mean uploads will fail
            logger.warning(f"Bucket check/create failed for '{profile.bucket}': {e}")

    async def upload(self, profile: AssetProfile, file: AssetFile) -> AssetRef:
        """Writes the file under a fresh key and returns its public URL."""
        key = generate_object_key(file.filename, file.content_type, prefix=profile.key_prefix)
        job_prefix = f"[{profile.bucket}/{key}]"
        logger.info(f"{job_prefix} Uploading '{file.filename}' ({file.size} bytes, {file.content_type}).")

        try:
            supabase = await self._client_factory()
        except (ValueError, RuntimeError) as e:
            logger.error(f"{job_prefix} Storage client unavailable: {e}")
            raise UploadError(f"Storage client unavailable: {e}") from e

        def do_upload():
            storage = supabase.storage.from_(profile.bucket)
            storage.upload(
                path=key,
                file=file.content,
                file_options={
                    "content-type": file.content_type,
                    "cache-control": self._settings.STORAGE_CACHE_CONTROL,
                    "upsert": "false",
                },
            )
            return storage.get_public_url(key)

        try:
            public_url = await asyncio.to_thread(do_upload)
        except StorageException as e:
            logger.error(f"{job_prefix} Supabase storage error during upload: {e}", exc_info=False)
            raise UploadError(f"Error uploading file: {e}") from e
        except Exception as e:
            logger.error(f"{job_prefix} Unexpected error during upload: {e}", exc_info=True)
            raise UploadError(f"Error uploading file: {e}") from e

        if not public_url:
            logger.error(f"{job_prefix} Upload finished but no public URL was returned.")
            raise UploadError("Failed to get public URL for uploaded file")

        # Some storage3 releases leave a trailing '?' on public URLs
        public_url = public_url.rstrip("?")
        logger.info(f"{job_prefix} Upload complete, URL: {public_url}")
        return AssetRef(bucket=profile.bucket, key=key, url=public_url)

    async def delete(self, bucket: str, key: str) -> None:
        """Deletes one object. Raises ReclaimError on failure."""
        job_prefix = f"[{bucket}/{key}]"
        try:
            supabase = await self._client_factory()

            def do_remove():
                return supabase.storage.from_(bucket).remove([key])

            await asyncio.to_thread(do_remove)
        except Exception as e:
            raise ReclaimError(f"Error deleting file {job_prefix}: {e}") from e
        logger.info(f"{job_prefix} Deleted object from storage.")
