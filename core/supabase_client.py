# core/supabase_client.py
import asyncio
from functools import partial
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple
from supabase import create_client

from core.config import Settings, settings as default_settings, logger as core_logger

logger = core_logger.getChild("Supabase")

# Owner record tables, one per asset kind
EVENTS_TABLE = "events"
SLIDES_TABLE = "slide_images"
STARTUPS_TABLE = "startups"
SPONSORS_TABLE = "sponsors"
MEMBERS_TABLE = "important_members"
SUCCESS_STORIES_TABLE = "success_stories"
RECORDINGS_TABLE = "past_recordings"
PROFILES_TABLE = "profiles"

ClientFactory = Callable[[], Awaitable[Any]]

# Clients keyed by (url, key), created lazily
_clients: Dict[Tuple[str, str], Any] = {}
_clients_lock = asyncio.Lock()


def _credentials(use_service_key: bool, settings: Settings):
    key = settings.SUPABASE_SERVICE_KEY if use_service_key else settings.SUPABASE_KEY
    return settings.SUPABASE_URL, key


async def get_supabase_client(use_service_key: bool = False, settings: Optional[Settings] = None):
    """
    Returns the shared Supabase client for the requested role.

    Storage writes, bucket provisioning and owner-record updates all need the
    service role client (RLS would otherwise hide the rows). Raises ValueError
    when the credentials are not configured and RuntimeError when the client
    cannot be built; callers translate both into their own errors.
    """
    role = "service" if use_service_key else "anon"
    url, key = _credentials(use_service_key, settings or default_settings)
    if not url or not key:
        missing = "Service Role Key" if use_service_key else "Anon Key"
        logger.error(f"Supabase URL or {missing} not configured. Cannot create client.")
        raise ValueError(f"Supabase URL or {missing} not configured")

    cache_key = (url, key)
    if cache_key in _clients:
        return _clients[cache_key]

    async with _clients_lock:
        if cache_key in _clients:
            return _clients[cache_key]
        logger.info(f"Creating Supabase client ({role} role) for {url}.")
        try:
            # create_client is synchronous
            _clients[cache_key] = await asyncio.to_thread(create_client, url, key)
        except Exception as e:
            logger.error(f"Failed to create Supabase client ({role} role): {e}", exc_info=True)
            raise RuntimeError(f"Failed to initialize Supabase client: {e}") from e
    return _clients[cache_key]


def service_client_factory(settings: Optional[Settings] = None) -> ClientFactory:
    """Zero-argument coroutine factory for the service role client of the given settings."""
    return partial(get_supabase_client, use_service_key=True, settings=settings)


def reset_supabase_clients() -> None:
    """Drops cached clients so the next call rebuilds them."""
    _clients.clear()
