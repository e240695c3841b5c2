"""
角色克隆 API 路由: 预览 / 克隆 / 批量克隆 / 血缘 / 模板 / 统计
前缀: /system/roles
"""
from dataclasses import replace
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session

from hoteladmin.config import settings
from hoteladmin.database import get_db
from hoteladmin.system.schemas import (
    CloneRequest, BatchCloneRequest, CloneTemplateIn,
    RoleOut, ClonePreviewOut, RecommendationOut, BatchCloneResponse, LineageOut,
    CloneTemplateOut, DuplicationStatsOut,
)
from hoteladmin.system.services.clone_template_service import CloneTemplateService, to_domain_template
from hoteladmin.system.services.rbac_service import PermissionService
from hoteladmin.system.services.role_clone_service import RoleCloneService, SqlRoleCloneGateway
from roleclone.config import settings as clone_settings
from roleclone.errors import (
    ClonePermissionDenied,
    CloneConflictError,
    CloneValidationFailed,
    RoleCloneError,
    RoleNotFoundError,
)
from roleclone.lineage import LineageTracker, prune_lineage
from roleclone.ports import ROLE_CREATE_PERMISSION, StaticPermissionChecker
from roleclone.session import RoleCloneSession
from roleclone.types import TemplateCategory


router = APIRouter(prefix="/system/roles", tags=["角色克隆"])


# ========== Dependencies ==========

def get_gateway(db: Session = Depends(get_db)) -> SqlRoleCloneGateway:
    return SqlRoleCloneGateway(db)


def get_current_user_id(
    user_id: Optional[int] = Header(None, alias=settings.USER_ID_HEADER),
) -> int:
    if user_id is None:
        raise HTTPException(status_code=401, detail=f"缺少请求头 {settings.USER_ID_HEADER}")
    return user_id


def get_permission_checker(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> StaticPermissionChecker:
    """调用方的权限码（汇总自其全部角色）"""
    return StaticPermissionChecker(PermissionService(db).get_user_permissions(user_id))


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, ClonePermissionDenied):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, RoleNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, CloneConflictError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, CloneValidationFailed):
        detail = {
            "message": str(e),
            "errors": [{"field": i.field, "message": i.message} for i in e.result.errors],
            "conflicts": [c.message for c in e.result.conflicts],
        }
        # 只有重名冲突时按冲突处理
        status_code = 409 if e.result.conflicts and not e.result.error_messages else 422
        return HTTPException(status_code=status_code, detail=detail)
    return HTTPException(status_code=400, detail=str(e))


def _require(checker: StaticPermissionChecker, permission: str) -> None:
    if not checker.has_permission(permission):
        raise HTTPException(status_code=403, detail=f"缺少权限 {permission}")


async def _new_session(gateway: SqlRoleCloneGateway, checker: StaticPermissionChecker) -> RoleCloneSession:
    return RoleCloneSession(gateway, checker, context=await gateway.build_context())


# ========== Endpoints ==========

@router.post("/clone-preview", response_model=ClonePreviewOut)
async def preview_clone(
    data: CloneRequest,
    gateway: SqlRoleCloneGateway = Depends(get_gateway),
    checker: StaticPermissionChecker = Depends(get_permission_checker),
):
    """预览克隆结果（不落库）"""
    session = await _new_session(gateway, checker)
    try:
        await session.start_clone(data.source_role_id, data.initial_config())
        preview = await session.generate_preview()
    except (RoleCloneError, ValueError) as e:
        raise _http_error(e)

    resp = ClonePreviewOut.model_validate(preview)
    resp.recommendations = [RecommendationOut.model_validate(r) for r in session.recommendations]
    return resp


@router.post("/clone", response_model=RoleOut, status_code=201)
async def clone_role(
    data: CloneRequest,
    gateway: SqlRoleCloneGateway = Depends(get_gateway),
    checker: StaticPermissionChecker = Depends(get_permission_checker),
):
    """克隆角色"""
    session = await _new_session(gateway, checker)
    try:
        await session.start_clone(data.source_role_id, data.initial_config())
        role = await session.execute_clone()
    except (RoleCloneError, ValueError) as e:
        raise _http_error(e)
    return RoleOut.model_validate(role)


@router.post("/batch-clone", response_model=BatchCloneResponse, status_code=201)
async def batch_clone_roles(
    data: BatchCloneRequest,
    gateway: SqlRoleCloneGateway = Depends(get_gateway),
    checker: StaticPermissionChecker = Depends(get_permission_checker),
):
    """批量克隆（全部成功或全部回滚），可选应用克隆模板"""
    session = await _new_session(gateway, checker)
    config = data.to_batch_config()
    try:
        session.start_batch_clone(config)
    except RoleCloneError as e:
        raise _http_error(e)

    template = None
    if data.template_id is not None:
        template = await gateway.get_template(data.template_id)
        if template is None:
            raise HTTPException(status_code=404, detail=f"模板 {data.template_id} 不存在")
        try:
            session.apply_template(template)
        except ValueError as e:
            raise _http_error(e)

    try:
        roles = await session.execute_batch_clone()
    except (RoleCloneError, ValueError) as e:
        if template is not None:
            await gateway.record_template_usage(data.template_id, success=False)
        raise _http_error(e)
    if template is not None:
        await gateway.record_template_usage(data.template_id, success=True)
    return BatchCloneResponse(
        total_roles=config.total_roles,
        roles=[RoleOut.model_validate(r) for r in roles],
    )


@router.get("/{role_id}/lineage", response_model=LineageOut)
async def get_role_lineage(
    role_id: str,
    depth: Optional[int] = Query(None, ge=0, description="血缘树展示深度"),
    gateway: SqlRoleCloneGateway = Depends(get_gateway),
    checker: StaticPermissionChecker = Depends(get_permission_checker),
):
    """获取角色血缘（祖先 / 后代 / 兄弟 + 整棵树）"""
    tracker = LineageTracker(gateway)
    try:
        snapshot = await tracker.load_lineage(role_id)
    except RoleCloneError as e:
        raise _http_error(e)

    if snapshot.tree is not None:
        max_depth = clone_settings.LINEAGE_DISPLAY_DEPTH if depth is None else depth
        snapshot = replace(snapshot, tree=prune_lineage(snapshot.tree, max_depth))
    return LineageOut.model_validate(snapshot)


# ========== Templates ==========

@router.get("/clone-templates", response_model=List[CloneTemplateOut])
def list_clone_templates(
    category: Optional[TemplateCategory] = Query(None, description="按分类过滤"),
    db: Session = Depends(get_db),
    checker: StaticPermissionChecker = Depends(get_permission_checker),
):
    """克隆模板列表（推荐的在前）"""
    _require(checker, "role.read")
    templates = CloneTemplateService(db).list_templates(category.value if category else None)
    return [CloneTemplateOut.model_validate(to_domain_template(t)) for t in templates]


@router.post("/clone-templates", response_model=CloneTemplateOut, status_code=201)
def create_clone_template(
    data: CloneTemplateIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
    checker: StaticPermissionChecker = Depends(get_permission_checker),
):
    """保存克隆模板"""
    _require(checker, ROLE_CREATE_PERMISSION)
    try:
        template = CloneTemplateService(db).create_template(
            name=data.name,
            configuration=data.configuration,
            description=data.description,
            source_role_id=data.source_role_id,
            tags=data.tags,
            category=data.category.value,
            is_recommended=data.is_recommended,
            created_by=user_id,
        )
        db.commit()
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
    return CloneTemplateOut.model_validate(to_domain_template(template))


# ========== Stats ==========

@router.get("/clone-stats", response_model=DuplicationStatsOut)
def get_duplication_stats(
    db: Session = Depends(get_db),
    checker: StaticPermissionChecker = Depends(get_permission_checker),
):
    """克隆统计: 总数 / 按类型 / 热门源角色 / 最近活动 / 模板使用"""
    _require(checker, "role.read")
    return DuplicationStatsOut.model_validate(RoleCloneService(db).get_duplication_stats())
