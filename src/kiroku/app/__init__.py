"""Demo HTTP service that forwards its own telemetry."""
from __future__ import annotations

__all__ = ['create_app']

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.responses import PlainTextResponse

from .._forwarder import Forwarder
from .._models import ForwarderConfig
from ._health import APP_VERSION, router as health_router
from ._middleware import TelemetryMiddleware
from ._products import router as products_router
from ._state import get_forwarder
from ._store import ProductStore


def create_app(config: ForwarderConfig | None = None,
               *,
               forwarder: Forwarder | None = None) -> FastAPI:
    """
    Build the demo app.

    A `forwarder` passed in is drained, but not closed, on shutdown;
    otherwise one is built from `config`, with unset fields taken from
    the environment, and closed with the app.
    """
    owns_forwarder = forwarder is None
    if forwarder is None:
        forwarder = Forwarder(config.with_env_defaults() if config is not None
                              else ForwarderConfig.from_env())

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        env = forwarder.config.base_attributes()['deployment.environment']
        await forwarder.record('Application starting', 'INFO', {
            'event.type': 'application_start',
            'environment': env,
        })
        await forwarder.record('Application started successfully', 'INFO', {
            'event.type': 'application_ready',
        })
        try:
            yield
        finally:
            if owns_forwarder:
                await forwarder.aclose()
            else:
                await forwarder.drain()

    app = FastAPI(title='Kiroku Demo API',
                  version=APP_VERSION,
                  lifespan=lifespan)
    app.state.forwarder = forwarder
    app.state.products = ProductStore()

    app.add_middleware(TelemetryMiddleware)
    app.include_router(health_router)
    app.include_router(products_router)

    @app.get('/health', response_class=PlainTextResponse)
    async def platform_health():
        # hosting platform health check; no events of its own
        return 'Healthy'

    @app.get('/')
    async def root(dt: Forwarder = Depends(get_forwarder)):
        await dt.record('Root endpoint accessed', 'INFO')
        return {
            'application': 'Kiroku Demo API',
            'version': APP_VERSION,
            'environment': dt.config.base_attributes()['deployment.environment'],
            'telemetry_enabled': dt.enabled,
            'endpoints': [
                '/health',
                '/api/health',
                '/api/products',
                '/docs',
            ],
        }

    return app
