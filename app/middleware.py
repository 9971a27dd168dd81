import json
import logging
import time
from typing import Any, Dict

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One JSON log line per request: client, method, path, status and latency."""

    def __init__(self, app, logger=None):
        super().__init__(app)
        self.logger = logger or logging.getLogger("app.access")

    async def dispatch(self, request: Request, call_next):
        start = time.time()
        ip = (request.client.host if request.client else None) or ""
        status = 500
        try:
            response: Response = await call_next(request)
            status = response.status_code
            return response
        finally:
            log: Dict[str, Any] = {
                "ts": int(time.time() * 1000),
                "ip": ip,
                "method": request.method,
                "path": request.url.path,
                "status": status,
                "duration_ms": int((time.time() - start) * 1000),
            }
            self.logger.info(json.dumps(log))
