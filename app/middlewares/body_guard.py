"""Reject oversized request bodies before they are parsed."""
from __future__ import annotations

import logging
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

logger = logging.getLogger("product-studio.body-guard")


def _too_large(limit: int) -> JSONResponse:
    return JSONResponse(
        status_code=413,
        content={
            "success": False,
            "error": "Request body exceeds the permitted size.",
            "code": "payload_too_large",
            "category": "input",
            "type": "upload",
            "retryable": False,
            "fatal": False,
            "suggestions": ["Try a smaller or more compressed image."],
            "limit_bytes": limit,
        },
    )


class BodyGuardMiddleware(BaseHTTPMiddleware):
    """拦截超过 ``max_body_bytes`` 的请求体，返回 413。``0`` 表示不限制。"""

    def __init__(self, app, *, max_body_bytes: int = 30 * 1024 * 1024) -> None:
        super().__init__(app)
        self.max_body_bytes = max(int(max_body_bytes or 0), 0)
        logger.debug("BodyGuardMiddleware configured", extra={"max_body_bytes": self.max_body_bytes})

    async def dispatch(self, request: Request, call_next: Callable):
        if not self.max_body_bytes or request.method not in ("POST", "PUT", "PATCH"):
            return await call_next(request)

        length_header = request.headers.get("content-length")
        if length_header:
            try:
                if int(length_header) > self.max_body_bytes:
                    logger.warning(
                        "rejected body by content-length",
                        extra={"content_length": length_header, "limit": self.max_body_bytes},
                    )
                    return _too_large(self.max_body_bytes)
            except ValueError:
                # Malformed header: fall back to the actual body length.
                pass
            else:
                return await call_next(request)

        body = await request.body()
        if len(body) > self.max_body_bytes:
            logger.warning(
                "rejected body by length",
                extra={"body_bytes": len(body), "limit": self.max_body_bytes},
            )
            return _too_large(self.max_body_bytes)
        return await call_next(request)


__all__ = ["BodyGuardMiddleware"]
