from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Mapping
from logging import Logger
from typing import Any

import httpx

from ._constants import DEFAULT_SEVERITY
from ._log import LOG
from ._models import (DeliveryOutcome,
                      DeliveryResult,
                      ForwarderConfig,
                      LogEvent)
from ._redact import redact
from ._transport import auth_headers, build_client, post_json


class Forwarder:
    """
    Kiroku telemetry forwarder.

    The forwarder:
        * decides once, at construction, whether delivery is enabled
          (both endpoint and API token configured)
        * builds a :class:`LogEvent` from a message, severity and
          attributes, merged over the process-wide base attributes
        * POSTs it to the ingest API, bounded by ``config.timeout``
        * never raises to the caller; failures end up as a local
          diagnostic on the ``kiroku`` logger

    The HTTP client is shared by every concurrent call. Pass one in with
    `client` to control the transport (e.g. in tests); otherwise the
    forwarder builds its own and closes it in :meth:`aclose`.
    """
    __slots__ = (
        '_config',
        '_enabled',
        '_timeout',
        '_url',
        '_headers',
        '_base',
        '_client',
        '_owns_client',
        '_logger',
        '_pending',
        'stats',
    )

    def __init__(
        self,
        config: ForwarderConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        logger: Logger | None = None,
    ):
        self._config = config = (ForwarderConfig.from_env()
                                 if config is None else config)
        self._enabled = config.enabled
        self._timeout = config.timeout
        self._logger = logger or LOG
        self._pending: set[asyncio.Task] = set()
        self.stats: Counter[str] = Counter()

        self._url = None
        self._headers = None
        self._base = None
        self._client = None
        self._owns_client = False

        if not self._enabled:
            self._logger.info(
                '[kiroku] Delivery disabled: endpoint or API token not set')
            return

        self._url = config.ingest_url
        self._headers = auth_headers(config)
        self._base = config.base_attributes()

        if client is None:
            client = build_client(config)
            self._owns_client = True
        self._client = client

        self._logger.debug('[kiroku] Delivering to %s', self._url)

    @property
    def config(self) -> ForwarderConfig:
        return self._config

    @property
    def enabled(self) -> bool:
        return self._enabled

    def build_event(self,
                    message: str,
                    severity: str = DEFAULT_SEVERITY,
                    attributes: Mapping[str, Any] | None = None) -> LogEvent:
        base = self._base
        if base is None:
            base = self._config.base_attributes()
        return LogEvent.build(message, severity,
                              base=base, attributes=attributes)

    async def record(self,
                     message: str,
                     severity: str = DEFAULT_SEVERITY,
                     attributes: Mapping[str, Any] | None = None) -> None:
        """
        Build and deliver one event.

        Completes within ``config.timeout`` seconds and never raises;
        awaiting it only bounds the caller's own latency.
        """
        if not self._enabled:
            return

        event = self._prepare(message, severity, attributes)
        if event is not None:
            await self.deliver(event)

    def submit(self,
               message: str,
               severity: str = DEFAULT_SEVERITY,
               attributes: Mapping[str, Any] | None = None,
               ) -> asyncio.Task | None:
        """
        Fire-and-forget :meth:`record`.

        The event (and its timestamp) is built right away; delivery runs
        as a task on the running loop. Returns the task, or ``None`` when
        delivery is disabled or no loop is running.
        """
        if not self._enabled:
            return None

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._logger.debug(
                '[kiroku] No running event loop, dropping event',
                extra={'kiroku_internal': True})
            return None

        event = self._prepare(message, severity, attributes)
        if event is None:
            return None

        task = loop.create_task(self.deliver(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def deliver(self, event: LogEvent) -> DeliveryResult:
        """
        Single delivery attempt, with an explicit outcome.

        Only a cancellation of the caller's own task propagates.
        """
        if not self._enabled:
            return DeliveryResult(DeliveryOutcome.DISABLED)

        try:
            body = event.to_json()
        except (TypeError, ValueError) as e:
            result = DeliveryResult(DeliveryOutcome.SERIALIZATION_ERROR,
                                    detail=str(e))
        else:
            try:
                result = await asyncio.wait_for(
                    post_json(self._client, self._url, body,
                              headers=self._headers),
                    self._timeout,
                )
            except asyncio.TimeoutError:
                result = DeliveryResult(
                    DeliveryOutcome.TIMEOUT,
                    detail=f'No response within {self._timeout}s')
            # noinspection PyBroadException
            except Exception as e:
                # e.g. client already closed
                result = DeliveryResult(DeliveryOutcome.TRANSPORT_ERROR,
                                        detail=repr(e))

        self._settle(result, event)
        return result

    async def drain(self, timeout: float | None = None) -> None:
        """
        Wait for submitted deliveries, at most `timeout` seconds
        (default: ``config.timeout``), then cancel the rest.
        """
        if not self._pending:
            return

        pending = set(self._pending)
        _, not_done = await asyncio.wait(
            pending,
            timeout=self._timeout if timeout is None else timeout,
        )
        for task in not_done:
            task.cancel()
        if not_done:
            await asyncio.gather(*not_done, return_exceptions=True)
            self._logger.warning(
                '[kiroku] Abandoned %d in-flight event(s) on shutdown',
                len(not_done),
                extra={'kiroku_internal': True})

    async def aclose(self) -> None:
        await self.drain()
        if self._client is None or not self._owns_client:
            return
        # noinspection PyBroadException
        try:
            await self._client.aclose()
        except Exception as e:
            self._logger.warning(
                '[kiroku] Failed to close HTTP client: %r', e,
                extra={'kiroku_internal': True})

    async def __aenter__(self) -> Forwarder:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def _prepare(self,
                 message: str,
                 severity: str,
                 attributes: Mapping[str, Any] | None) -> LogEvent | None:
        # noinspection PyBroadException
        try:
            return self.build_event(message, severity, attributes)
        except Exception as e:
            self._settle(DeliveryResult(DeliveryOutcome.SERIALIZATION_ERROR,
                                        detail=repr(e)))
            return None

    def _settle(self,
                result: DeliveryResult,
                event: LogEvent | None = None) -> None:
        self.stats[result.outcome.value] += 1

        if result.ok:
            return

        # local diagnostic only, never routed back through the forwarder
        payload = redact({
            'outcome': result.outcome.value,
            'status_code': result.status_code,
            'detail': result.detail,
            'severity': event.severity if event else None,
        })
        extra = {'kiroku': payload, 'kiroku_internal': True}

        if result.outcome is DeliveryOutcome.REJECTED:
            self._logger.warning('[kiroku] Failed to send log: %s',
                                 result.status_code, extra=extra)
        else:
            self._logger.warning('[kiroku] Exception sending log (%s): %s',
                                 result.outcome.value,
                                 payload['detail'], extra=extra)
