"""
Pytest 配置和共享 fixtures
"""
import os

# 应用启动时不写本地数据库文件，也不写种子数据
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SEED_RBAC", "false")

import pytest
from datetime import datetime
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from fakes import FakeRoleCloneGateway
from hoteladmin.database import Base, get_db
from hoteladmin.system import models  # noqa: F401
from hoteladmin.main import app
from hoteladmin.system.services.rbac_seed import seed_rbac_data
from hoteladmin.system.services.rbac_service import PermissionService, RoleService
from roleclone.engine.event_bus import EventBus
from roleclone.lineage import LineageRecord, build_lineage_forest
from roleclone.ports import StaticPermissionChecker
from roleclone.session import RoleCloneSession
from roleclone.types import (
    CloneType,
    HierarchyConstraints,
    Permission,
    Role,
    RoleDuplicationContext,
)


@pytest.fixture(scope="function")
def db_engine():
    """创建内存数据库引擎"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine):
    """创建数据库会话"""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture(scope="function")
def client(db_session):
    """创建测试客户端"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ============== 数据库种子 Fixtures ==============

@pytest.fixture
def seeded_db(db_session):
    """写入默认权限和角色"""
    seed_rbac_data(db_session)
    return db_session


@pytest.fixture
def role_ids(seeded_db):
    """角色编码 -> 角色ID"""
    return {r.code: r.id for r in RoleService(seeded_db).get_roles()}


@pytest.fixture
def admin_headers(seeded_db, role_ids):
    """拥有 role.create 的用户"""
    PermissionService(seeded_db).add_user_role(1, role_ids["sysadmin"])
    seeded_db.commit()
    return {"X-User-Id": "1"}


@pytest.fixture
def housekeeper_headers(seeded_db, role_ids):
    """没有 role.create 的用户"""
    PermissionService(seeded_db).add_user_role(2, role_ids["housekeeper"])
    seeded_db.commit()
    return {"X-User-Id": "2"}


# ============== 引擎 Fixtures ==============

@pytest.fixture
def p1():
    return Permission(id="p1", resource="user", action="read", scope="property")


@pytest.fixture
def p2():
    return Permission(id="p2", resource="user", action="write", scope="platform")


@pytest.fixture
def front_desk_permissions(p1, p2):
    return [
        p1,
        p2,
        Permission(id="p3", resource="reservation", action="write", scope="organization"),
        Permission(id="p4", resource="room", action="read", scope="department"),
        Permission(id="p5", resource="task", action="complete", scope="own"),
    ]


@pytest.fixture
def user_admin_role(p1, p2):
    return Role(id="r1", name="User Admin", description="Manages users", level=60, permissions=[p1, p2])


@pytest.fixture
def front_desk_role(front_desk_permissions):
    return Role(
        id="r2", name="Front Desk Agent", description="Checks guests in and out",
        level=40, permissions=front_desk_permissions, user_count=4,
    )


@pytest.fixture
def housekeeper_role():
    return Role(id="r3", name="Housekeeper", level=20, permissions=[
        Permission(id="p4", resource="room", action="read", scope="department"),
    ])


@pytest.fixture
def lineage_tree():
    """
    r2 Front Desk Agent
    ├── r21 Front Desk Agent Copy
    │   └── r211 Night Auditor
    └── r22 Front Desk Trainee
    """
    records = [
        LineageRecord(id="r2", name="Front Desk Agent"),
        LineageRecord(id="r21", name="Front Desk Agent Copy", parent_role_id="r2",
                      clone_type=CloneType.FULL, cloned_at=datetime(2026, 3, 1, 9, 0)),
        LineageRecord(id="r22", name="Front Desk Trainee", parent_role_id="r2",
                      clone_type=CloneType.HIERARCHY, cloned_at=datetime(2026, 4, 2, 9, 0)),
        LineageRecord(id="r211", name="Night Auditor", parent_role_id="r21",
                      clone_type=CloneType.PARTIAL, cloned_at=datetime(2026, 5, 3, 9, 0)),
    ]
    return build_lineage_forest(records)[0]


@pytest.fixture
def gateway(user_admin_role, front_desk_role, housekeeper_role, lineage_tree):
    return FakeRoleCloneGateway(
        roles=[user_admin_role, front_desk_role, housekeeper_role],
        lineage=[lineage_tree],
    )


@pytest.fixture
def context():
    return RoleDuplicationContext(
        existing_names=["User Admin", "Front Desk Agent", "Housekeeper"],
        hierarchy_constraints=HierarchyConstraints(min_level=10, max_level=100),
    )


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def checker():
    return StaticPermissionChecker({"role.create"})


@pytest.fixture
def session(gateway, checker, context, bus):
    return RoleCloneSession(gateway, checker, context=context, event_bus=bus)
