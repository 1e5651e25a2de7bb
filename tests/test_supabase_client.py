import pytest
from unittest.mock import patch, MagicMock

from core.config import Settings
from core.supabase_client import get_supabase_client, reset_supabase_clients, service_client_factory


@pytest.fixture(autouse=True)
def fresh_clients():
    reset_supabase_clients()
    yield
    reset_supabase_clients()


@pytest.mark.asyncio
async def test_missing_service_key_raises_value_error():
    settings = Settings(SUPABASE_URL="https://proj.supabase.co", SUPABASE_SERVICE_KEY=None)
    with pytest.raises(ValueError, match="Service Role Key"):
        await get_supabase_client(use_service_key=True, settings=settings)


@pytest.mark.asyncio
async def test_client_is_created_once_per_role():
    settings = Settings(SUPABASE_URL="https://proj.supabase.co", SUPABASE_KEY="anon", SUPABASE_SERVICE_KEY="service")
    with patch("core.supabase_client.create_client", side_effect=lambda url, key: MagicMock(key=key)) as mock_create:
        service_a = await get_supabase_client(use_service_key=True, settings=settings)
        service_b = await get_supabase_client(use_service_key=True, settings=settings)
        anon = await get_supabase_client(settings=settings)

    assert service_a is service_b
    assert service_a.key == "service"
    assert anon.key == "anon"
    assert mock_create.call_count == 2


@pytest.mark.asyncio
async def test_client_creation_failure_raises_runtime_error():
    settings = Settings(SUPABASE_URL="not a url", SUPABASE_SERVICE_KEY="service")
    with patch("core.supabase_client.create_client", side_effect=Exception("Invalid URL")):
        with pytest.raises(RuntimeError, match="Invalid URL"):
            await get_supabase_client(use_service_key=True, settings=settings)


@pytest.mark.asyncio
async def test_clients_are_cached_per_credentials():
    first = Settings(SUPABASE_URL="https://one.supabase.co", SUPABASE_SERVICE_KEY="svc-1")
    second = Settings(SUPABASE_URL="https://two.supabase.co", SUPABASE_SERVICE_KEY="svc-2")
    with patch("core.supabase_client.create_client", side_effect=lambda url, key: MagicMock(url=url)) as mock_create:
        one = await service_client_factory(first)()
        two = await service_client_factory(second)()
        again = await service_client_factory(first)()

    assert one.url == "https://one.supabase.co"
    assert two.url == "https://two.supabase.co"
    assert again is one
    assert mock_create.call_count == 2
