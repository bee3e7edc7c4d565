import sys

import pytest
import pytest_asyncio
from flash_flare import FlareClient, with_hooks
from flash_flare.db import create_engine
from flash_flare.hooks import HookRegistry, default_hook_registry
from flash_flare.models import Model
from flash_flare.registry import ModelRegistry, default_model_registry

from . import models  # noqa: F401  (registers the mapped classes)


@pytest.fixture(autouse=True)
def reset_default_registries():
    """Module-level registrations must not leak between tests."""
    yield
    default_hook_registry.clear_all()
    default_model_registry.clear()


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite database with all test tables."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'flare.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Model.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def hook_registry():
    return HookRegistry()


@pytest.fixture
def model_registry():
    return ModelRegistry()


@pytest_asyncio.fixture
async def base_client(engine, model_registry):
    """Client without hook processing."""
    client = FlareClient(engine, Model, model_registry=model_registry)
    yield client
    await client.wait_for_hooks()


@pytest_asyncio.fixture
async def client(base_client, hook_registry):
    """Client running the hooks of ``hook_registry``."""
    hooked = with_hooks(base_client, hook_registry)
    yield hooked
    await hooked.wait_for_hooks()


@pytest.fixture
def callbacks_dir(tmp_path):
    """
    Empty callbacks directory; modules imported from it are removed from
    ``sys.modules`` afterwards.
    """
    directory = tmp_path / "callbacks"
    directory.mkdir()
    yield directory

    for name in list(sys.modules):
        if name.startswith("flare_callbacks."):
            del sys.modules[name]
