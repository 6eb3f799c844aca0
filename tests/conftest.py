"""
Pytest fixtures for the authorization kernel tests.
"""

from typing import AsyncGenerator, Dict

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pharmhub_authz.config import Settings
from pharmhub_authz.database import build_engine, build_session_maker, init_db
from pharmhub_authz.kernel.models.rbac import OperationType, Permission, ResourceType, Role, RoleName
from pharmhub_authz.kernel.permissions.assignments import UserAssignmentService
from pharmhub_authz.kernel.permissions.cache import PermissionCache, get_permission_cache
from pharmhub_authz.kernel.permissions.catalog import PermissionCatalog
from pharmhub_authz.kernel.permissions.groups import GroupRegistry
from pharmhub_authz.kernel.permissions.hierarchy import RoleHierarchyService
from pharmhub_authz.kernel.permissions.resolver import EffectivePermissionResolver
from pharmhub_authz.kernel.permissions.roles import RoleRegistry


@pytest.fixture(autouse=True)
def _reset_shared_cache():
    """Services built without an explicit cache share the process-wide one."""
    get_permission_cache().invalidate_all()
    yield
    get_permission_cache().invalidate_all()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(audit_access_decisions=True, permission_cache_enabled=True)


@pytest.fixture
def cache() -> PermissionCache:
    return PermissionCache(ttl_seconds=300, max_entries=100)


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """Fresh file-backed SQLite database per test."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'authz_test.db'}")
    await init_db(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(db_engine) -> async_sessionmaker[AsyncSession]:
    return build_session_maker(db_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def catalog(db_session, cache) -> PermissionCatalog:
    return PermissionCatalog(db_session, cache)


@pytest.fixture
def roles(db_session, cache, test_settings) -> RoleRegistry:
    return RoleRegistry(db_session, cache, test_settings)


@pytest.fixture
def groups(db_session, cache) -> GroupRegistry:
    return GroupRegistry(db_session, cache)


@pytest.fixture
def hierarchy(db_session, test_settings) -> RoleHierarchyService:
    return RoleHierarchyService(db_session, test_settings)


@pytest.fixture
def resolver(db_session, cache, test_settings) -> EffectivePermissionResolver:
    return EffectivePermissionResolver(db_session, cache, test_settings)


@pytest.fixture
def assignments(db_session, cache) -> UserAssignmentService:
    return UserAssignmentService(db_session, cache)


@pytest_asyncio.fixture
async def prescription_permissions(catalog: PermissionCatalog, db_session) -> Dict[str, Permission]:
    """The prescription permissions used throughout the resolver scenarios."""
    created = {
        "CREATE_PRESCRIPTION": await catalog.create(
            "CREATE_PRESCRIPTION", ResourceType.PRESCRIPTION, OperationType.CREATE
        ),
        "VIEW_PRESCRIPTION": await catalog.create(
            "VIEW_PRESCRIPTION", ResourceType.PRESCRIPTION, OperationType.READ
        ),
        "MANAGE_PRESCRIPTION": await catalog.create(
            "MANAGE_PRESCRIPTION", ResourceType.PRESCRIPTION, OperationType.MANAGE, requires_approval=True
        ),
        "VIEW_SALES": await catalog.create("VIEW_SALES", ResourceType.SALES, OperationType.READ),
    }
    await db_session.commit()
    return created


@pytest_asyncio.fixture
async def chain_roles(roles: RoleRegistry, db_session) -> Dict[RoleName, Role]:
    """ADMIN(1), PROPRIETOR(2), PHARMACIST(3), USER(5) with no edges yet."""
    created = {
        RoleName.ADMIN: await roles.create_role(RoleName.ADMIN, 1),
        RoleName.PROPRIETOR: await roles.create_role(RoleName.PROPRIETOR, 2),
        RoleName.PHARMACIST: await roles.create_role(RoleName.PHARMACIST, 3),
        RoleName.USER: await roles.create_role(RoleName.USER, 5),
    }
    await db_session.commit()
    return created


@pytest_asyncio.fixture
async def chain(chain_roles, hierarchy: RoleHierarchyService) -> Dict[RoleName, Role]:
    """ADMIN -> PROPRIETOR -> PHARMACIST -> USER."""
    await hierarchy.add_child_role(chain_roles[RoleName.ADMIN].id, chain_roles[RoleName.PROPRIETOR].id)
    await hierarchy.add_child_role(chain_roles[RoleName.PROPRIETOR].id, chain_roles[RoleName.PHARMACIST].id)
    await hierarchy.add_child_role(chain_roles[RoleName.PHARMACIST].id, chain_roles[RoleName.USER].id)
    return chain_roles
