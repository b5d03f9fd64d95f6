"""
Pytest configuration and fixtures for storefront runtime tests
"""

import os
import sys
from collections.abc import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))  # noqa: PTH100, PTH118, PTH119, PTH120

from storefront import models  # noqa: E402, F401
from storefront.auth import ROLE_ADMIN, ROLE_OPERATOR, create_access_token  # noqa: E402
from storefront.database import Base, enable_sqlite_foreign_keys  # noqa: E402
from storefront.models.store import Store  # noqa: E402
from storefront.plugins.registry import WidgetRegistry  # noqa: E402
from storefront.plugins.sandbox import ControllerSandbox  # noqa: E402
from storefront.schemas.plugin import ArtifactCreate, PluginCreate, PluginInstall  # noqa: E402
from storefront.services import plugin_service, store_service  # noqa: E402

STORE_ID = "store-acme"
OTHER_STORE_ID = "store-globex"


def make_engine(database_path):
    """
    Create an engine over a file-backed SQLite database.

    NullPool keeps no connection between checkouts, so the same engine can be
    used from the pytest event loop and from TestClient's loop.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{database_path}", poolclass=NullPool)
    enable_sqlite_foreign_keys(engine)
    return engine


@pytest.fixture(scope="function")
async def test_engine(tmp_path):
    """Fresh schema per test function."""
    engine = make_engine(tmp_path / "storefront_test.db")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(test_engine, class_=AsyncSession, autoflush=False, expire_on_commit=False)


@pytest.fixture(scope="function")
async def test_db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def widget_registry() -> WidgetRegistry:
    return WidgetRegistry()


@pytest.fixture
def sandbox(session_factory):
    sandbox = ControllerSandbox(session_factory, timeout_seconds=1.0)
    yield sandbox
    sandbox.shutdown()


@pytest.fixture
async def test_store(test_db: AsyncSession) -> Store:
    """An active store to hang slot configurations off."""
    return await store_service.create_store(test_db, STORE_ID, "acme", "Acme Outfitters")


@pytest.fixture
def install_plugin(test_db: AsyncSession, widget_registry: WidgetRegistry):
    """
    Factory installing a plugin package.

    Usage: await install_plugin("hero-plugin", widgets=["hero"], artifacts=[...])
    """

    async def _install(plugin_id, slug=None, status="active", widgets=(), artifacts=(), navigation=()):
        widget_artifacts = [
            ArtifactCreate(
                kind="script",
                file_name=f"{name}.jsx",
                content=f"export default function {name.title()}() {{ return null }}",
                widget_meta={"name": name, "displayName": name.title(), "defaultConfig": {"size": "m"}},
            )
            for name in widgets
        ]
        bundle = PluginInstall(
            plugin=PluginCreate(id=plugin_id, slug=slug or plugin_id.lower(), name=plugin_id.title(), status=status),
            artifacts=[*widget_artifacts, *artifacts],
            navigation=list(navigation),
        )
        return await plugin_service.install_plugin(test_db, widget_registry, bundle)

    return _install


@pytest.fixture
def operator_token() -> str:
    return create_access_token("operator-1", role=ROLE_OPERATOR, store_ids=[STORE_ID])


@pytest.fixture
def admin_token() -> str:
    return create_access_token("admin-1", role=ROLE_ADMIN)


@pytest.fixture
def operator_headers(operator_token) -> dict[str, str]:
    return {"Authorization": f"Bearer {operator_token}", "X-Store-Id": STORE_ID}


@pytest.fixture
def admin_headers(admin_token) -> dict[str, str]:
    return {"Authorization": f"Bearer {admin_token}"}
