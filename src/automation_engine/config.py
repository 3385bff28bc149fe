"""
引擎配置
"""
import os
import logging
from dataclasses import dataclass

from dotenv import load_dotenv, find_dotenv


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class EngineSettings:
    """引擎配置项"""
    log_level: str = "INFO"
    metrics_enabled: bool = True
    max_finished_executions: int = 1000  # 保留供查询的已结束执行数量，0 表示结束即清除
    plan_cache_size: int = 128

    @classmethod
    def from_env(cls, load_env_file: bool = True) -> "EngineSettings":
        """从环境变量（以及 .env 文件）加载配置"""
        if load_env_file:
            load_dotenv(find_dotenv(usecwd=True))

        return cls(
            log_level=os.getenv("WORKFLOW_LOG_LEVEL", "INFO").upper(),
            metrics_enabled=_env_bool("WORKFLOW_METRICS_ENABLED", "true"),
            max_finished_executions=int(os.getenv("WORKFLOW_MAX_FINISHED_EXECUTIONS", "1000")),
            plan_cache_size=int(os.getenv("WORKFLOW_PLAN_CACHE_SIZE", "128"))
        )


def configure_logging(settings: EngineSettings = None):
    """配置日志"""
    settings = settings or EngineSettings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format=LOG_FORMAT
    )
