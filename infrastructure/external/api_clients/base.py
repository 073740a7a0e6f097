"""
REST API客户端基类

提供通用的HTTP请求功能，包括：
- 可配置重试 (tenacity)
- 错误分类 (timeout / network / HTTP status)
- 结构化请求日志
- 超时控制
"""
import asyncio
import json
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

import httpx
from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from core.logging_config import get_logger

logger = get_logger(__name__)


class HTTPMethod(Enum):
    """HTTP方法枚举"""
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"


@dataclass
class APIResponse:
    """API响应封装"""
    status_code: int
    headers: Dict[str, str]
    data: Any
    raw_content: bytes
    elapsed_ms: float
    request_id: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400

    def json(self) -> Any:
        if self.data is not None:
            return self.data
        return json.loads(self.raw_content)


class APIError(Exception):
    """API错误基类"""
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[APIResponse] = None,
        request_id: Optional[str] = None
    ):
        self.message = message
        self.status_code = status_code
        self.response = response
        self.request_id = request_id
        super().__init__(self.message)

    def __str__(self):
        parts = [self.message]
        if self.status_code:
            parts.append(f"Status: {self.status_code}")
        if self.request_id:
            parts.append(f"Request ID: {self.request_id}")
        return " | ".join(parts)


class APITimeoutError(APIError):
    """请求超时"""
    pass


class APINetworkError(APIError):
    """网络错误（连接失败、连接重置等）"""
    pass


class NotFoundError(APIError):
    """资源未找到错误"""
    pass


class ServerError(APIError):
    """服务器错误"""
    pass


class RetryableAPIError(APIError):
    """可重试的API错误"""

    def __init__(self, message: str, status_code: Optional[int], response: Optional[APIResponse]):
        super().__init__(
            message=message,
            status_code=status_code,
            response=response,
            request_id=response.request_id if response else None,
        )


RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class BaseAPIClient:
    """
    REST API客户端基类

    Subclasses call `get`/`post` and translate `APIError` subclasses into
    their own domain errors. `max_retries` defaults to 0: callers decide
    whether a failure is worth another attempt.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 8.0,
        max_retries: int = 0,
        retry_delay: float = 0.2,
        headers: Optional[Dict[str, str]] = None,
        auth_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: API基础URL
            timeout: 单次请求超时时间（秒）
            max_retries: 最大重试次数（不含首次请求）
            retry_delay: 重试基础延迟（秒）
            headers: 默认请求头
            auth_token: Bearer 令牌
            transport: 自定义 httpx transport（测试中使用 httpx.MockTransport）
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._transport = transport

        self.default_headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": "checkout-pricing/1.0",
        }
        if headers:
            self.default_headers.update(headers)
        if auth_token:
            self.default_headers["Authorization"] = f"Bearer {auth_token}"

        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """获取或创建HTTP客户端"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
                follow_redirects=True,
            )
        return self._client

    async def close(self):
        """关闭HTTP客户端"""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _raise_for_status(self, response: APIResponse):
        """处理错误响应"""
        error_class = APIError
        if response.status_code == 404:
            error_class = NotFoundError
        elif response.status_code >= 500:
            error_class = ServerError

        error_message = f"API request failed with status {response.status_code}"
        if isinstance(response.data, dict):
            error_message = (
                response.data.get("message")
                or response.data.get("error")
                or response.data.get("detail")
                or error_message
            )
        raise error_class(
            message=str(error_message),
            status_code=response.status_code,
            response=response,
            request_id=response.request_id,
        )

    async def _send_once(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]],
        json_data: Optional[Dict[str, Any]],
        headers: Dict[str, str],
    ) -> APIResponse:
        started = time.perf_counter()
        response = await self.client.request(
            method=method,
            url="/" + endpoint.lstrip("/"),
            params=params,
            json=json_data,
            headers=headers,
        )
        elapsed = (time.perf_counter() - started) * 1000

        response_data = None
        if "application/json" in response.headers.get("content-type", ""):
            try:
                response_data = response.json()
            except json.JSONDecodeError:
                response_data = None

        api_response = APIResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            data=response_data,
            raw_content=response.content,
            elapsed_ms=elapsed,
            request_id=response.headers.get("x-request-id"),
        )
        logger.debug(
            "api_response",
            method=method,
            endpoint=endpoint,
            status_code=api_response.status_code,
            elapsed_ms=round(elapsed, 2),
        )

        if api_response.is_error and api_response.status_code in RETRY_STATUS_CODES:
            raise RetryableAPIError(
                message=f"Transient API error with status {api_response.status_code}",
                status_code=api_response.status_code,
                response=api_response,
            )
        if api_response.is_error:
            self._raise_for_status(api_response)
        return api_response

    async def _request(
        self,
        method: Union[str, HTTPMethod],
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Union[Dict[str, Any], BaseModel]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> APIResponse:
        """
        发送HTTP请求

        Raises:
            APITimeoutError: 超时（所有重试均超时）
            APINetworkError: 网络错误
            APIError: 其他 HTTP 错误
        """
        if isinstance(method, HTTPMethod):
            method = method.value
        if isinstance(json_data, BaseModel):
            json_data = json_data.model_dump(mode="json", exclude_none=True)

        request_headers = {**self.default_headers, **(headers or {})}

        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(
                multiplier=self.retry_delay,
                min=self.retry_delay,
                max=self.retry_delay * 8,
            ),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError, RetryableAPIError)),
            before_sleep=lambda state: logger.warning(
                "api_request_retry",
                method=method,
                endpoint=endpoint,
                attempt=state.attempt_number,
                error=str(state.outcome.exception()) if state.outcome else None,
            ),
        )

        try:
            async for attempt in retrying:
                with attempt:
                    return await self._send_once(method, endpoint, params, json_data, request_headers)
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            raise APITimeoutError(f"Request timeout after {self.timeout}s") from exc
        except httpx.NetworkError as exc:
            raise APINetworkError(f"Network error: {exc}") from exc
        except RetryableAPIError as exc:
            if exc.response is not None:
                self._raise_for_status(exc.response)
            raise APIError(exc.message) from exc
        except httpx.HTTPError as exc:
            raise APINetworkError(f"HTTP error: {exc}") from exc
        # AsyncRetrying always yields at least one attempt
        raise APIError("request was not attempted")

    async def get(self, endpoint: str, **kwargs) -> APIResponse:
        """GET请求"""
        return await self._request(HTTPMethod.GET, endpoint, **kwargs)

    async def post(self, endpoint: str, **kwargs) -> APIResponse:
        """POST请求"""
        return await self._request(HTTPMethod.POST, endpoint, **kwargs)


__all__ = [
    "APIError",
    "APINetworkError",
    "APIResponse",
    "APITimeoutError",
    "BaseAPIClient",
    "HTTPMethod",
    "NotFoundError",
    "RetryableAPIError",
    "ServerError",
]

