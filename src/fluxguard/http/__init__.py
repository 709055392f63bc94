"""Request/response descriptors and the httpx request executor."""

from .models import RequestConfig, Response
from .transport import HttpxExecutor

__all__ = ["RequestConfig", "Response", "HttpxExecutor"]
