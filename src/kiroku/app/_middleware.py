from __future__ import annotations

from time import perf_counter

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from .._forwarder import Forwarder
from .._log import APP_LOG


class TelemetryMiddleware(BaseHTTPMiddleware):
    """
    Log every request and response locally, and forward one event for
    each to the ingest API without waiting on delivery.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        forwarder: Forwarder = request.app.state.forwarder
        start = perf_counter()

        method = request.method
        path = request.url.path
        remote_addr = request.client.host if request.client else 'unknown'

        APP_LOG.info('Incoming request: %s %s from %s',
                     method, path, remote_addr)
        forwarder.submit(f'{method} {path}', 'INFO', {
            'http.method': method,
            'http.url': path,
            'http.remote_addr': remote_addr,
        })

        try:
            response = await call_next(request)
        except Exception:
            self._after(forwarder, 500, path, start)
            raise

        self._after(forwarder, response.status_code, path, start)
        return response

    @staticmethod
    def _after(forwarder: Forwarder,
               status_code: int,
               path: str,
               start: float) -> None:
        duration_ms = (perf_counter() - start) * 1000

        APP_LOG.info('Response: %s for %s (%.2fms)',
                     status_code, path, duration_ms)
        forwarder.submit(
            f'Response {status_code} for {path}',
            'ERROR' if status_code >= 400 else 'INFO',
            {
                'http.status_code': str(status_code),
                'http.duration_ms': f'{duration_ms:.2f}',
            },
        )
