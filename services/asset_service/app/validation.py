# services/asset_service/app/validation.py
from typing import Optional
from core.models import AssetFile, AssetProfile, ValidationResult
from .errors import AssetError, InvalidType, MissingFile, TooLarge

TYPE_LABELS = {
    "image/jpeg": "JPEG",
    "image/png": "PNG",
    "image/gif": "GIF",
    "image/webp": "WEBP",
    "image/svg+xml": "SVG",
}


def check_file(file: Optional[AssetFile], profile: AssetProfile) -> None:
    """Raises the matching AssetError when the file may not be uploaded for this profile."""
    if file is None or not file.size:
        raise MissingFile("No file selected")

    content_type = (file.content_type or "").lower()
    if content_type not in profile.allowed_types:
        labels = [TYPE_LABELS.get(t, t) for t in profile.allowed_types]
        allowed = ", ".join(labels[:-1]) + f", or {labels[-1]}" if len(labels) > 1 else labels[0]
        raise InvalidType(f"Please select a valid image file ({allowed})")

    if file.size > profile.max_bytes:
        raise TooLarge(file.size, profile.max_bytes)


def validate(file: Optional[AssetFile], profile: AssetProfile) -> ValidationResult:
    """Pure check of type and size. Never touches the network."""
    try:
        check_file(file, profile)
    except AssetError as e:
        return ValidationResult(ok=False, error_code=e.code, title=e.title, message=e.message)
    return ValidationResult(ok=True)
