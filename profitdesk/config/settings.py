# profitdesk/config/settings.py
import os
import json
import logging
from typing import Dict, Any, Optional
from pathlib import Path
from dataclasses import dataclass

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "PROFITDESK_CONFIG_PATH"

DEFAULTS: Dict[str, Any] = {
    "BACKEND_API_URL": "http://localhost:3016",
    "BACKEND_API_TOKEN": "",
    "BACKEND_TIMEOUT": 30,
    "DAILY_TREND_BUCKETS": 30,
    "GRID_PAGE_SIZE": 50,
    "REQUIRE_KNOWN_SKUS": True,
    "HPP_SESSION_IDLE_MINUTES": 120,
    "USE_MOCK_DATA": False,
    "LOG_LEVEL": "INFO",
    "LOG_FILE": "logs/profitdesk.log",
    "API_HOST": "0.0.0.0",
    "API_PORT": 8000,
}

# 第三方库日志过多，统一调到 WARNING
QUIET_LOGGERS = ("urllib3", "multipart", "python_multipart")


@dataclass
class BackendConfig:
    """订单后端服务配置"""
    base_url: str
    api_token: str
    timeout: float


@dataclass
class ReportConfig:
    """报表与HPP录入配置"""
    daily_trend_buckets: int
    grid_page_size: int
    require_known_skus: bool
    session_idle_minutes: int


@dataclass
class AppConfig:
    """服务运行配置"""
    log_level: str
    log_file: str
    use_mock_data: bool
    host: str
    port: int


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _positive_int(key: str, value: Any) -> int:
    """解析正整数，非法值回退到默认值"""
    try:
        number = int(value)
    except (TypeError, ValueError):
        number = 0
    if number <= 0:
        logger.warning(f"Invalid value for {key}: {value!r}, falling back to {DEFAULTS[key]}")
        return int(DEFAULTS[key])
    return number


class Settings:
    """ProfitDesk 配置

    读取顺序：环境变量 > JSON配置文件 > DEFAULTS。
    """

    def __init__(self, config_path: Optional[str] = None, setup_logging: bool = True):
        self._config_path = config_path or self._find_config_file()
        self._file_config = self._read_config_file()

        self.backend = BackendConfig(
            base_url=str(self.get("BACKEND_API_URL")).strip().rstrip("/"),
            api_token=str(self.get("BACKEND_API_TOKEN") or ""),
            timeout=float(self.get("BACKEND_TIMEOUT")),
        )
        self.reports = ReportConfig(
            daily_trend_buckets=_positive_int("DAILY_TREND_BUCKETS", self.get("DAILY_TREND_BUCKETS")),
            grid_page_size=_positive_int("GRID_PAGE_SIZE", self.get("GRID_PAGE_SIZE")),
            require_known_skus=_as_bool(self.get("REQUIRE_KNOWN_SKUS")),
            session_idle_minutes=_positive_int("HPP_SESSION_IDLE_MINUTES", self.get("HPP_SESSION_IDLE_MINUTES")),
        )
        self.app = AppConfig(
            log_level=str(self.get("LOG_LEVEL")).upper(),
            log_file=str(self.get("LOG_FILE") or ""),
            use_mock_data=_as_bool(self.get("USE_MOCK_DATA")),
            host=str(self.get("API_HOST")),
            port=_positive_int("API_PORT", self.get("API_PORT")),
        )

        if setup_logging:
            self._setup_logging()

    @staticmethod
    def _find_config_file() -> str:
        """定位配置文件"""
        explicit = os.getenv(CONFIG_PATH_ENV)
        if explicit:
            if os.path.exists(explicit):
                return explicit
            logger.warning(f"{CONFIG_PATH_ENV} points to missing file {explicit}")

        candidates = [
            Path.cwd() / "config" / "config.json",
            Path.home() / ".profitdesk" / "config.json",
        ]
        found = next((path for path in candidates if path.exists()), None)
        return str(found or candidates[0])

    def _read_config_file(self) -> Dict[str, Any]:
        if not os.path.exists(self._config_path):
            logger.info(f"No config file at {self._config_path}, using defaults and environment")
            return {}

        try:
            with open(self._config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Config file {self._config_path} is not valid JSON: {e}")
            return {}

        if not isinstance(data, dict):
            logger.error(f"Config file {self._config_path} must contain a JSON object, ignoring it")
            return {}

        unknown = sorted(set(data) - set(DEFAULTS))
        if unknown:
            logger.debug(f"Ignoring unknown config keys: {', '.join(unknown)}")
        logger.info(f"Config loaded from {self._config_path}")
        return data

    def get(self, key: str) -> Any:
        """读取配置项（非空环境变量优先）"""
        env_value = os.getenv(key)
        if env_value:
            return env_value
        return self._file_config.get(key, DEFAULTS[key])

    def _setup_logging(self):
        """初始化根日志（控制台 + 可选日志文件）"""
        handlers = [logging.StreamHandler()]
        if self.app.log_file:
            log_file = Path(self.app.log_file)
            log_file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

        logging.basicConfig(
            level=getattr(logging, self.app.log_level, logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            handlers=handlers,
        )
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    def has_backend(self) -> bool:
        """是否连接真实后端（USE_MOCK_DATA 时使用内存数据）"""
        return bool(self.backend.base_url) and not self.app.use_mock_data


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """进程级配置单例"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
