from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import JSONResponse

from .._forwarder import Forwarder
from .._log import APP_LOG
from ._state import get_forwarder, get_store
from ._store import Product, ProductIn, ProductStore


router = APIRouter(prefix='/api/products', tags=['products'])


@router.get('', response_model=list[Product])
async def list_products(store: ProductStore = Depends(get_store),
                        dt: Forwarder = Depends(get_forwarder)):
    APP_LOG.info('Getting all products - Count: %d', len(store))
    await dt.record(f'Retrieved all products (count: {len(store)})', 'INFO')
    return store.all()


@router.get('/error/exception')
async def throw_exception(dt: Forwarder = Depends(get_forwarder)):
    APP_LOG.error('Simulating unhandled exception')
    await dt.record('About to throw exception', 'ERROR')
    raise RuntimeError('Simulated exception for telemetry testing!')


@router.get('/error/500')
async def internal_error(dt: Forwarder = Depends(get_forwarder)):
    APP_LOG.error('Simulating 500 Internal Server Error')
    await dt.record('500 Internal Server Error simulated', 'ERROR')
    return JSONResponse(status_code=500, content={
        'error': 'Internal Server Error',
        'message': 'Simulated error for testing',
    })


@router.get('/error/database')
async def database_error(dt: Forwarder = Depends(get_forwarder)):
    APP_LOG.error('Simulating database connection error')
    await dt.record('Database connection failed', 'ERROR', {
        'error.type': 'database_connection',
        'error.message': 'Connection timeout',
    })
    return JSONResponse(status_code=503, content={
        'error': 'Database Unavailable',
        'message': 'Cannot connect to database',
    })


@router.get('/error/timeout')
async def slow_request(seconds: float = Query(10.0, ge=0, le=60),
                       dt: Forwarder = Depends(get_forwarder)):
    APP_LOG.warning('Simulating slow request (%s seconds)', seconds)
    await dt.record('Slow request started', 'WARN')
    await asyncio.sleep(seconds)
    await dt.record('Slow request completed', 'WARN')
    return {'message': f'Completed after {seconds:g} seconds'}


@router.get('/{product_id}', response_model=Product)
async def get_product(product_id: int,
                      store: ProductStore = Depends(get_store),
                      dt: Forwarder = Depends(get_forwarder)):
    APP_LOG.info('Getting product with id: %d', product_id)
    product = store.get(product_id)

    if product is None:
        APP_LOG.warning('Product with id %d not found', product_id)
        await dt.record(f'Product not found: {product_id}', 'WARN')
        raise HTTPException(status_code=404, detail='Product not found')

    await dt.record(f'Retrieved product: {product.name} (id: {product_id})',
                    'INFO')
    return product


@router.post('', response_model=Product, status_code=201)
async def create_product(item: ProductIn,
                         response: Response,
                         store: ProductStore = Depends(get_store),
                         dt: Forwarder = Depends(get_forwarder)):
    APP_LOG.info('Creating new product: %s', item.name)
    product = store.add(item)

    await dt.record(f'Created new product: {product.name}', 'INFO', {
        'product.id': str(product.id),
        'product.name': product.name,
        'product.price': str(product.price),
    })

    response.headers['Location'] = f'{router.prefix}/{product.id}'
    return product
