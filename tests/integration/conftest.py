"""Shared fixtures for end-to-end engine tests"""
import pytest
import pytest_asyncio

from healthloop.services.container import ServiceContainer


@pytest.fixture
def make_container(document_store, kv_store, fixed_clock, engine_settings, test_user_id):
    """Factory for session containers sharing one backend pair"""
    def _make(**overrides) -> ServiceContainer:
        params = {
            "user_id": test_user_id,
            "document_store": document_store,
            "persistence": kv_store,
            "clock": fixed_clock,
            "settings": engine_settings,
        }
        params.update(overrides)
        return ServiceContainer(**params)
    return _make


@pytest_asyncio.fixture
async def session(make_container):
    """Started container; shut down after the test"""
    container = make_container()
    await container.start()
    yield container
    await container.shutdown()
