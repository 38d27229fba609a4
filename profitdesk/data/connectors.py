# profitdesk/data/connectors.py
import logging
from typing import Dict, Any, Optional

import requests

logger = logging.getLogger(__name__)


class BackendError(ConnectionError):
    """后端服务请求失败"""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        self.status_code = status_code
        self.payload = payload
        super().__init__(message)


class BackendConnector:
    """后端HTTP服务连接器"""

    def __init__(self, settings=None):
        if settings is None:
            from ..config.settings import get_settings
            settings = get_settings().backend
        self.settings = settings
        self._session = None

    @property
    def session(self) -> requests.Session:
        """获取HTTP会话（懒加载）"""
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update({"Content-Type": "application/json"})
            if self.settings.api_token:
                self._session.headers["Authorization"] = f"Bearer {self.settings.api_token}"
            logger.info(f"Backend session created for {self.settings.base_url}")
        return self._session

    def _url(self, path: str) -> str:
        return f"{self.settings.base_url}/{path.lstrip('/')}"

    def request(self, method: str, path: str, params: Dict[str, Any] = None,
                json: Dict[str, Any] = None) -> Any:
        """发送请求并返回JSON响应"""
        url = self._url(path)
        # 去掉空参数
        params = {k: v for k, v in (params or {}).items() if v not in (None, "")}
        logger.debug(f"{method} {url} params={params}")

        try:
            response = self.session.request(
                method, url, params=params or None, json=json, timeout=self.settings.timeout
            )
        except requests.RequestException as e:
            logger.error(f"Backend request failed: {method} {url}: {e}")
            raise BackendError(f"Cannot reach backend: {e}") from e

        try:
            payload = response.json() if response.content else {}
        except ValueError:
            payload = {"message": response.text}

        if response.status_code == 401:
            logger.warning(f"Authentication required: {_message(payload) or 'token expired'}")

        if not response.ok:
            message = _message(payload) or f"HTTP {response.status_code}"
            logger.error(f"Backend returned {response.status_code} for {method} {url}: {message}")
            raise BackendError(message, status_code=response.status_code, payload=payload)

        return payload

    def get(self, path: str, params: Dict[str, Any] = None) -> Any:
        return self.request("GET", path, params=params)

    def post(self, path: str, json: Dict[str, Any] = None) -> Any:
        return self.request("POST", path, json=json)

    def close(self):
        """关闭会话"""
        if self._session:
            self._session.close()
            self._session = None
            logger.info("Backend session closed")


def _message(payload: Any) -> Optional[str]:
    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("error")
        if isinstance(message, list):
            return "; ".join(str(m) for m in message)
        return str(message) if message else None
    return None
