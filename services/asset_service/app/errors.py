# services/asset_service/app/errors.py
"""Error taxonomy for the asset upload workflow.

Every error carries a machine readable ``code`` plus the ``title`` and
message shown to the user as a notification.
"""
from typing import Optional


class AssetError(Exception):
    """Base class for asset workflow failures."""
    code = "asset_error"
    title = "Upload failed"
    retryable = False

    def __init__(self, message: str, title: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if title:
            self.title = title


class MissingFile(AssetError):
    code = "missing_file"
    title = "Upload error"


class InvalidType(AssetError):
    """Raised when the declared MIME type is outside the profile's allow-list."""
    code = "invalid_type"
    title = "Invalid file type"


class TooLarge(AssetError):
    """Raised when the file exceeds the profile's size ceiling."""
    code = "too_large"
    title = "File too large"

    def __init__(self, size: int, max_bytes: int):
        self.size = size
        self.max_bytes = max_bytes
        super().__init__(
            f"File size must be less than {max_bytes // (1024 * 1024)}MB "
            f"(received {size / 1024 / 1024:.2f}MB)"
        )


class UploadError(AssetError):
    """A single storage write failed. Transient; the orchestrator may retry."""
    code = "upload_error"
    title = "Upload failed"
    retryable = True


class DbUpdateError(AssetError):
    """Writing the asset reference to the owner record failed. Not retried."""
    code = "db_update_error"
    title = "Error updating image"


class OwnerNotFound(DbUpdateError):
    code = "owner_not_found"
    title = "Record not found"


class ReclaimError(AssetError):
    """Deleting an orphaned asset failed. Only ever logged."""
    code = "reclaim_error"
    title = "Cleanup failed"


class InvalidOwnerId(DbUpdateError):
    code = "invalid_owner_id"
    title = "Invalid record"


class ReferenceRequired(DbUpdateError):
    """Raised when clearing a reference column the owner table declares NOT NULL."""
    code = "reference_required"
    title = "Image required"
