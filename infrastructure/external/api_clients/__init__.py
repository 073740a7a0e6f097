"""
API客户端模块

提供与外部REST API集成的客户端基类
"""
from .base import BaseAPIClient, APIResponse, APIError, APITimeoutError, APINetworkError

__all__ = [
    "BaseAPIClient",
    "APIResponse",
    "APIError",
    "APITimeoutError",
    "APINetworkError",
]
