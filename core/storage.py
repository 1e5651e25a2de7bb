# core/storage.py
"""
Core Storage Definitions.

Every kind of owner record (event, slide, startup, sponsor, member, success
story, recording, user profile) stores its image in its own Supabase
Storage bucket and keeps the public URL in one column of its table. This
module maps each kind to that contract so the upload workflow never
hard-codes bucket or column names.
"""
from typing import Dict
from core.config import Settings, settings as default_settings
from core.models import AssetProfile, OwnerKind
from core.supabase_client import (
    EVENTS_TABLE, SLIDES_TABLE, STARTUPS_TABLE, SPONSORS_TABLE, MEMBERS_TABLE, SUCCESS_STORIES_TABLE,
    RECORDINGS_TABLE, PROFILES_TABLE,
)

IMAGE_TYPES = ["image/jpeg", "image/png", "image/gif", "image/webp"]
LOGO_TYPES = IMAGE_TYPES + ["image/svg+xml"]


def build_asset_profiles(settings: Settings = default_settings) -> Dict[OwnerKind, AssetProfile]:
    """Builds the per-kind storage contract from the given settings."""
    default_max = settings.DEFAULT_MAX_UPLOAD_BYTES
    return {
        OwnerKind.EVENT: AssetProfile(
            kind=OwnerKind.EVENT, bucket="events", table=EVENTS_TABLE, column="image_url",
            max_bytes=default_max, allowed_types=IMAGE_TYPES,
        ),
        OwnerKind.SLIDE: AssetProfile(
            kind=OwnerKind.SLIDE, bucket="slides", table=SLIDES_TABLE, column="image_url",
            max_bytes=default_max, allowed_types=IMAGE_TYPES, nullable=False,
        ),
        OwnerKind.STARTUP: AssetProfile(
            kind=OwnerKind.STARTUP, bucket="startups", table=STARTUPS_TABLE, column="logo_url",
            max_bytes=default_max, allowed_types=LOGO_TYPES,
        ),
        OwnerKind.SPONSOR: AssetProfile(
            kind=OwnerKind.SPONSOR, bucket="sponsor-logos", table=SPONSORS_TABLE, column="logo_url",
            max_bytes=default_max, allowed_types=LOGO_TYPES,
        ),
        OwnerKind.MEMBER: AssetProfile(
            kind=OwnerKind.MEMBER, bucket="members", table=MEMBERS_TABLE, column="avatar_url",
            max_bytes=settings.AVATAR_MAX_UPLOAD_BYTES, allowed_types=IMAGE_TYPES, key_prefix="members/",
        ),
        OwnerKind.SUCCESS_STORY: AssetProfile(
            kind=OwnerKind.SUCCESS_STORY, bucket="success-stories", table=SUCCESS_STORIES_TABLE, column="image_url",
            max_bytes=default_max, allowed_types=IMAGE_TYPES,
        ),
        OwnerKind.RECORDING: AssetProfile(
            kind=OwnerKind.RECORDING, bucket="recordings", table=RECORDINGS_TABLE, column="thumbnail_url",
            max_bytes=default_max, allowed_types=IMAGE_TYPES,
        ),
        # User profile avatars share the member avatar ceiling
        OwnerKind.PROFILE: AssetProfile(
            kind=OwnerKind.PROFILE, bucket="avatars", table=PROFILES_TABLE, column="avatar_url",
            max_bytes=settings.AVATAR_MAX_UPLOAD_BYTES, allowed_types=IMAGE_TYPES,
        ),
    }


ASSET_PROFILES = build_asset_profiles()


def get_asset_profile(kind: OwnerKind | str, profiles: Dict[OwnerKind, AssetProfile] = ASSET_PROFILES) -> AssetProfile:
    """Looks up the profile for a kind. Raises KeyError for unknown kinds."""
    try:
        owner_kind = OwnerKind(kind)
    except ValueError:
        raise KeyError(f"Unknown asset owner kind: {kind}")
    return profiles[owner_kind]
