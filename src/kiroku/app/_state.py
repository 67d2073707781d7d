from __future__ import annotations

from fastapi import Request

from .._forwarder import Forwarder
from ._store import ProductStore


def get_forwarder(request: Request) -> Forwarder:
    return request.app.state.forwarder


def get_store(request: Request) -> ProductStore:
    return request.app.state.products
