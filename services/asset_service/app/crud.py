# services/asset_service/app/crud.py
import asyncio
import datetime
from typing import Optional, Dict, Any
from supabase import PostgrestAPIError
from postgrest import APIResponse

from core.config import logger as core_logger
from core.models import AssetProfile, AssetRef, OwnerAssetReference
from core.supabase_client import ClientFactory, get_supabase_client
from core.utils import is_valid_uuid
from .errors import DbUpdateError, InvalidOwnerId, OwnerNotFound, ReferenceRequired
from .reclaimer import OrphanReclaimer

logger = core_logger.getChild("AssetService").getChild("CRUD")

OWNER_ID_COLUMN = "id"
UPDATED_AT_COLUMN = "updated_at"


def _job_prefix(profile: AssetProfile, owner_id: str) -> str:
    return f"[{profile.kind.value}:{owner_id}]"


def _check_owner_id(profile: AssetProfile, owner_id: str) -> None:
    if not is_valid_uuid(owner_id):
        logger.error(f"{_job_prefix(profile, owner_id)} Invalid owner ID, refusing database call.")
        raise InvalidOwnerId(f"Invalid {profile.kind.value} ID: {owner_id}")


async def _client(client_factory: Optional[ClientFactory]):
    if client_factory is not None:
        return await client_factory()
    return await get_supabase_client(use_service_key=True)


async def get_owner_row(profile: AssetProfile, owner_id: str,
                        client_factory: Optional[ClientFactory] = None) -> Optional[Dict[str, Any]]:
    """Returns {'id', <column>} for the owner record, or None when it does not exist."""
    job_prefix = _job_prefix(profile, owner_id)
    _check_owner_id(profile, owner_id)
    try:
        supabase = await _client(client_factory)

        def db_call():
            return supabase.table(profile.table)\
                .select(f"{OWNER_ID_COLUMN}, {profile.column}")\
                .eq(OWNER_ID_COLUMN, owner_id)\
                .limit(1)\
                .maybe_single()\
                .execute()

        response = await asyncio.to_thread(db_call)
    except PostgrestAPIError as e:
        logger.error(f"{job_prefix} Supabase API error reading asset reference: {e.message} (Code: {e.code}, Details: {e.details})", exc_info=False)
        raise DbUpdateError(f"Database error reading {profile.kind.value}: {e.message}") from e
    except (ValueError, RuntimeError) as e:
        logger.error(f"{job_prefix} Database client unavailable: {e}")
        raise DbUpdateError(f"Database unavailable: {e}") from e
    except Exception as e:
        logger.error(f"{job_prefix} Unexpected error reading asset reference: {e}", exc_info=True)
        raise DbUpdateError(f"Database error reading {profile.kind.value}: {e}") from e

    if response and hasattr(response, 'data') and response.data:
        return response.data
    logger.info(f"{job_prefix} No row found in '{profile.table}'.")
    return None


async def get_asset_reference(profile: AssetProfile, owner_id: str,
                              client_factory: Optional[ClientFactory] = None) -> Optional[str]:
    """Current asset URL of an owner record. Raises OwnerNotFound for a missing row."""
    row = await get_owner_row(profile, owner_id, client_factory=client_factory)
    if row is None:
        raise OwnerNotFound(f"{profile.kind.value.capitalize()} {owner_id} not found")
    return row.get(profile.column)


async def update_asset_reference(profile: AssetProfile, owner_id: str, url: Optional[str],
                                 client_factory: Optional[ClientFactory] = None) -> None:
    """Writes the reference column (and updated_at) of one owner record."""
    job_prefix = _job_prefix(profile, owner_id)
    _check_owner_id(profile, owner_id)
    if url is None and not profile.nullable:
        raise ReferenceRequired(f"A {profile.kind.value} must keep an image; delete the {profile.kind.value} instead")

    update_data = {
        profile.column: url,
        UPDATED_AT_COLUMN: datetime.datetime.now(datetime.timezone.utc).isoformat(),
    }
    try:
        supabase = await _client(client_factory)

        def db_call():
            return supabase.table(profile.table)\
                .update(update_data)\
                .eq(OWNER_ID_COLUMN, owner_id)\
                .execute()

        response: APIResponse = await asyncio.to_thread(db_call)
    except PostgrestAPIError as e:
        logger.error(f"{job_prefix} Supabase API error updating {profile.column}: {e.message} (Code: {e.code}, Details: {e.details})", exc_info=False)
        raise DbUpdateError(f"Failed to update {profile.kind.value} image in database: {e.message}") from e
    except (ValueError, RuntimeError) as e:
        logger.error(f"{job_prefix} Database client unavailable: {e}")
        raise DbUpdateError(f"Database unavailable: {e}") from e
    except Exception as e:
        logger.error(f"{job_prefix} Unexpected error updating {profile.column}: {e}", exc_info=True)
        raise DbUpdateError(f"Failed to update {profile.kind.value} image in database: {e}") from e

    if not response or not getattr(response, 'data', None):
        logger.warning(f"{job_prefix} Update matched no row in '{profile.table}'.")
        raise OwnerNotFound(f"{profile.kind.value.capitalize()} {owner_id} not found")
    logger.info(f"{job_prefix} Set {profile.column} to '{url}'.")


async def replace_asset_reference(
    profile: AssetProfile,
    owner_id: str,
    new_url: Optional[str],
    reclaimer: OrphanReclaimer,
    client_factory: Optional[ClientFactory] = None,
) -> OwnerAssetReference:
    """
    Points an owner record at new_url and schedules cleanup of the asset it
    pointed at before, when that was a different, non-empty URL.
    """
    job_prefix = _job_prefix(profile, owner_id)
    previous_url = await get_asset_reference(profile, owner_id, client_factory=client_factory)
    await update_asset_reference(profile, owner_id, new_url, client_factory=client_factory)

    reclaim_scheduled = False
    if previous_url and previous_url != new_url:
        logger.info(f"{job_prefix} Reference replaced, reclaiming previous asset {previous_url}.")
        reclaim_scheduled = reclaimer.schedule(previous_url, profile) is not None
    return OwnerAssetReference(
        kind=profile.kind, owner_id=owner_id, url=new_url,
        previous_url=previous_url, reclaim_scheduled=reclaim_scheduled,
    )


async def link(profile: AssetProfile, owner_id: str, asset: AssetRef, reclaimer: OrphanReclaimer,
               client_factory: Optional[ClientFactory] = None) -> OwnerAssetReference:
    """Links a freshly uploaded asset to its owner record."""
    return await replace_asset_reference(profile, owner_id, asset.url, reclaimer, client_factory=client_factory)


async def delete_owner_record(profile: AssetProfile, owner_id: str, reclaimer: OrphanReclaimer,
                              client_factory: Optional[ClientFactory] = None) -> OwnerAssetReference:
    """Deletes the owner row, then schedules cleanup of the asset it held."""
    job_prefix = _job_prefix(profile, owner_id)
    previous_url = await get_asset_reference(profile, owner_id, client_factory=client_factory)
    try:
        supabase = await _client(client_factory)

        def db_call():
            return supabase.table(profile.table)\
                .delete()\
                .eq(OWNER_ID_COLUMN, owner_id)\
                .execute()

        await asyncio.to_thread(db_call)
    except PostgrestAPIError as e:
        logger.error(f"{job_prefix} Supabase API error deleting row: {e.message} (Code: {e.code}, Details: {e.details})", exc_info=False)
        raise DbUpdateError(f"Failed to delete {profile.kind.value}: {e.message}") from e
    except (ValueError, RuntimeError) as e:
        logger.error(f"{job_prefix} Database client unavailable: {e}")
        raise DbUpdateError(f"Database unavailable: {e}") from e
    except Exception as e:
        logger.error(f"{job_prefix} Unexpected error deleting row: {e}", exc_info=True)
        raise DbUpdateError(f"Failed to delete {profile.kind.value}: {e}") from e

    logger.info(f"{job_prefix} Deleted row from '{profile.table}'.")
    reclaim_scheduled = reclaimer.schedule(previous_url, profile) is not None
    return OwnerAssetReference(
        kind=profile.kind, owner_id=owner_id, url=None,
        previous_url=previous_url, reclaim_scheduled=reclaim_scheduled,
    )
