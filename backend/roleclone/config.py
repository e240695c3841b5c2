"""
角色克隆引擎配置
从环境变量读取 (前缀 ROLECLONE_)
"""
from pydantic_settings import BaseSettings, SettingsConfigDict


class CloneSettings(BaseSettings):
    """克隆引擎设置"""

    # 新克隆会话的默认级别
    DEFAULT_LEVEL: int = 50

    # 级别估算的上下限
    MIN_LEVEL: int = 10
    MAX_LEVEL: int = 100

    # hierarchy 克隆: 目标级别低于阈值时剔除对应范围的权限
    PLATFORM_SCOPE_MIN_LEVEL: int = 70
    ORGANIZATION_SCOPE_MIN_LEVEL: int = 50

    # 批量克隆单次允许的变体数量
    MAX_BATCH_VARIATIONS: int = 10

    # 血缘树展示深度（仅展示用，追踪器本身不限制）
    LINEAGE_DISPLAY_DEPTH: int = 5

    # 事件总线历史条数
    EVENT_HISTORY_SIZE: int = 100

    # 克隆统计: 热门源角色和最近活动的条数
    STATS_POPULAR_LIMIT: int = 5
    STATS_RECENT_LIMIT: int = 10

    model_config = SettingsConfigDict(env_prefix="ROLECLONE_", case_sensitive=True)


# 全局设置实例
settings = CloneSettings()
