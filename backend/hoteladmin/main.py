"""
HotelOps 角色管理主应用入口
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from hoteladmin.config import settings
from hoteladmin.database import SessionLocal, init_db
from hoteladmin.system.routers import role_clone_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 初始化数据库
    init_db()

    if settings.SEED_RBAC:
        from hoteladmin.system.services.rbac_seed import seed_rbac_data
        db = SessionLocal()
        try:
            stats = seed_rbac_data(db)
            logger.info(f"RBAC初始化完成: {stats}")
        finally:
            db.close()

    yield


# 创建应用
app = FastAPI(
    title=settings.APP_NAME,
    description="酒店后台角色克隆与血缘管理",
    version="1.0.0",
    debug=settings.DEBUG,
    lifespan=lifespan
)

# 注册路由
app.include_router(role_clone_router.router)


@app.get("/health")
def health_check():
    """健康检查"""
    return {"status": "healthy"}
