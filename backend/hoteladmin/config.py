"""
应用配置
从环境变量读取配置
"""
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """应用设置"""

    # 应用基础配置
    APP_NAME: str = "HotelOps Role Admin"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # 数据库配置
    DATABASE_URL: str = "sqlite:///./hotelops.db"

    # 调用方用户ID所在的请求头
    USER_ID_HEADER: str = "X-User-Id"

    # 启动时写入默认权限和角色
    SEED_RBAC: bool = True

    model_config = ConfigDict(env_file=".env", case_sensitive=True)


# 全局设置实例
settings = Settings()
