"""
RBAC 种子数据: 默认权限和基础角色（可作为克隆源）
"""
from sqlalchemy.orm import Session
from hoteladmin.system.models.rbac import SysPermission, SysRole
from hoteladmin.system.services.rbac_service import RoleService


SEED_PERMISSIONS = [
    # code, name, resource, action, scope
    {"code": "role.read", "name": "查看角色", "resource": "role", "action": "read", "scope": "organization"},
    {"code": "role.create", "name": "创建角色", "resource": "role", "action": "create", "scope": "organization"},
    {"code": "role.update", "name": "编辑角色", "resource": "role", "action": "update", "scope": "organization"},
    {"code": "user.manage", "name": "用户管理", "resource": "user", "action": "manage", "scope": "platform"},
    {"code": "room.read", "name": "查看房态", "resource": "room", "action": "read", "scope": "property"},
    {"code": "room.update", "name": "更新房态", "resource": "room", "action": "update", "scope": "property"},
    {"code": "reservation.read", "name": "查看预订", "resource": "reservation", "action": "read", "scope": "property"},
    {"code": "reservation.write", "name": "管理预订", "resource": "reservation", "action": "write", "scope": "property"},
    {"code": "billing.read", "name": "查看账单", "resource": "billing", "action": "read", "scope": "property"},
    {"code": "billing.refund", "name": "退款", "resource": "billing", "action": "refund", "scope": "organization"},
    {"code": "task.read", "name": "查看任务", "resource": "task", "action": "read", "scope": "department"},
    {"code": "task.complete", "name": "完成任务", "resource": "task", "action": "complete", "scope": "own"},
    {"code": "report.read", "name": "查看报表", "resource": "report", "action": "read", "scope": "organization"},
]

SEED_ROLES = [
    {
        "code": "sysadmin", "name": "System Administrator", "level": 90, "category": "management",
        "description": "Full access to the back office",
        "permissions": [p["code"] for p in SEED_PERMISSIONS],
    },
    {
        "code": "front_desk_manager", "name": "Front Desk Manager", "level": 60, "category": "front_office",
        "description": "Runs the front desk shift",
        "permissions": ["room.read", "room.update", "reservation.read", "reservation.write",
                        "billing.read", "billing.refund", "report.read"],
    },
    {
        "code": "housekeeper", "name": "Housekeeper", "level": 20, "category": "housekeeping",
        "description": "Cleans and inspects rooms",
        "permissions": ["room.read", "task.read", "task.complete"],
    },
]


def seed_rbac_data(db: Session) -> dict:
    """Seed default permissions and roles. Idempotent, skips existing codes.

    Returns dict with counts of created items.
    """
    stats = {"permissions": 0, "roles": 0}

    for perm in SEED_PERMISSIONS:
        existing = db.query(SysPermission).filter(SysPermission.code == perm["code"]).first()
        if not existing:
            db.add(SysPermission(**perm))
            stats["permissions"] += 1
    db.flush()

    perm_ids = {p.code: p.id for p in db.query(SysPermission).all()}
    service = RoleService(db)
    for role_def in SEED_ROLES:
        if service.get_role_by_code(role_def["code"]):
            continue
        data = {k: v for k, v in role_def.items() if k != "permissions"}
        role = service.create_role(**data)
        role.is_system = True
        service.assign_permissions(role.id, [perm_ids[c] for c in role_def["permissions"]])
        stats["roles"] += 1

    if stats["permissions"] or stats["roles"]:
        db.commit()
    return stats

