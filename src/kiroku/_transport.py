"""HTTP transport for the log ingest API."""
from __future__ import annotations

import ssl

import httpx

from ._constants import AUTH_SCHEME, CA_BUNDLE_ENV_VARS, CONTENT_TYPE
from ._env_helpers import first_env
from ._models import DeliveryOutcome, DeliveryResult, ForwarderConfig

USER_AGENT = 'kiroku'

# Shared by every concurrent delivery; httpx synchronizes per connection.
DEFAULT_LIMITS = httpx.Limits(max_connections=100,
                              max_keepalive_connections=20)


def _ssl_context_from_env() -> ssl.SSLContext | None:
    cafile = first_env(*CA_BUNDLE_ENV_VARS)
    if cafile:
        ctx = ssl.create_default_context(cafile=cafile)
        return ctx
    return None


def auth_headers(config: ForwarderConfig) -> dict[str, str]:
    return {
        'Authorization': f'{AUTH_SCHEME} {config.api_token}',
        'Content-Type': CONTENT_TYPE,
    }


def build_client(config: ForwarderConfig,
                 *,
                 transport: httpx.AsyncBaseTransport | None = None,
                 ) -> httpx.AsyncClient:
    """
    Build the pooled client a :class:`Forwarder` owns for its lifetime.

    :param config: forwarder configuration (for the timeout)
    :param transport: optional transport override, e.g. for tests
    """
    ctx = _ssl_context_from_env()
    return httpx.AsyncClient(
        headers={'User-Agent': USER_AGENT},
        timeout=httpx.Timeout(config.timeout),
        limits=DEFAULT_LIMITS,
        verify=ctx if ctx is not None else True,
        transport=transport,
    )


async def post_json(client: httpx.AsyncClient,
                    url: str,
                    body: bytes,
                    *,
                    headers: dict[str, str]) -> DeliveryResult:
    """
    POST an already serialized JSON body.

    Never raises for network or HTTP level failures; those come back as
    a :class:`DeliveryResult` with the matching outcome.
    """
    try:
        resp = await client.post(url, content=body, headers=headers)
    except httpx.TimeoutException as e:
        return DeliveryResult(DeliveryOutcome.TIMEOUT,
                              detail=str(e) or type(e).__name__)
    except (httpx.HTTPError, httpx.InvalidURL, OSError) as e:
        return DeliveryResult(DeliveryOutcome.TRANSPORT_ERROR,
                              detail=str(e) or type(e).__name__)

    if not resp.is_success:
        return DeliveryResult(DeliveryOutcome.REJECTED,
                              status_code=resp.status_code,
                              detail=resp.text[:500] or None)

    return DeliveryResult(DeliveryOutcome.DELIVERED,
                          status_code=resp.status_code)
