from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request

from .._forwarder import Forwarder
from .._log import APP_LOG
from ._state import get_forwarder

APP_VERSION = '1.0.1'

router = APIRouter(prefix='/api/health', tags=['health'])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get('')
async def health(request: Request,
                 dt: Forwarder = Depends(get_forwarder)):
    remote_ip = request.client.host if request.client else 'unknown'

    APP_LOG.info('Health check endpoint called from %s', remote_ip)
    await dt.record(f'Health check from {remote_ip}', 'INFO', {
        'endpoint': '/api/health',
        'remote_ip': remote_ip,
        'method': 'GET',
    })

    attrs = dt.config.base_attributes()
    return {
        'status': 'Healthy',
        'timestamp': _now(),
        'environment': attrs['deployment.environment'],
        'machine_name': attrs['host.name'],
        'telemetry_enabled': dt.enabled,
        'version': APP_VERSION,
    }


@router.get('/ready')
async def ready(dt: Forwarder = Depends(get_forwarder)):
    APP_LOG.info('Readiness check endpoint called')
    await dt.record('Readiness check', 'INFO')
    return {'status': 'Ready', 'timestamp': _now()}


@router.get('/live')
async def live(dt: Forwarder = Depends(get_forwarder)):
    APP_LOG.info('Liveness check endpoint called')
    await dt.record('Liveness check', 'INFO')
    return {'status': 'Live', 'timestamp': _now()}
