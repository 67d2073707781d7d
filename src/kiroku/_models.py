from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from os import getenv
from socket import gethostname
from time import time_ns
from typing import Any

from ._constants import (API_TOKEN_ENV_VARS,
                         DEFAULT_CLOUD_PLATFORM,
                         DEFAULT_ENVIRONMENT,
                         DEFAULT_QUIET_LEVEL,
                         DEFAULT_SERVICE_NAME,
                         DEFAULT_SERVICE_NAMESPACE,
                         DEFAULT_SEVERITY,
                         DEFAULT_TIMEOUT,
                         ENDPOINT_ENV_VARS,
                         ENV_ENV_VARS,
                         INGEST_PATH,
                         SERVICE_NAME_ENV_VARS)
from ._env_helpers import first_env, parse_quiet, parse_timeout

_last_ms = 0


def now_ms() -> int:
    """
    Epoch milliseconds, clamped so that it never steps backwards
    within the process (e.g. after an NTP correction).
    """
    global _last_ms
    ms = time_ns() // 1_000_000
    if ms < _last_ms:
        return _last_ms
    _last_ms = ms
    return ms


@dataclass(frozen=True, slots=True)
class ForwarderConfig:
    endpoint: str | None = None
    api_token: str | None = None

    # Identity, sent as base attributes on every event
    service_name: str | None = None
    service_namespace: str | None = None
    cloud_platform: str | None = None
    host_name: str | None = None
    environment: str | None = None

    # Bound on a single delivery attempt, in seconds
    timeout: float = DEFAULT_TIMEOUT
    # Level for chatty third-party loggers; None leaves them alone
    quiet_level: int | None = DEFAULT_QUIET_LEVEL

    @property
    def enabled(self) -> bool:
        return bool(self.endpoint) and bool(self.api_token)

    @property
    def ingest_url(self) -> str:
        return f"{(self.endpoint or '').rstrip('/')}{INGEST_PATH}"

    def base_attributes(self) -> dict[str, str]:
        return {
            'service.name': self.service_name or DEFAULT_SERVICE_NAME,
            'service.namespace': (self.service_namespace
                                  or DEFAULT_SERVICE_NAMESPACE),
            'host.name': self.host_name or gethostname(),
            'cloud.platform': self.cloud_platform or DEFAULT_CLOUD_PLATFORM,
            'deployment.environment': self.environment or DEFAULT_ENVIRONMENT,
        }

    def with_env_defaults(self) -> ForwarderConfig:
        cfg = ForwarderConfig.from_env()
        return cfg.overlay(self)

    def overlay(self, other: ForwarderConfig) -> ForwarderConfig:
        """
        Return a new config where `other` overrides `self`.
        Semantics:
          - strings: None means "no override" ("" is an override)
          - timeout: always override
          - quiet_level: always override, None meaning "disable"
        """
        changes: dict[str, Any] = {}

        for name in ('endpoint', 'api_token', 'service_name',
                     'service_namespace', 'cloud_platform',
                     'host_name', 'environment'):
            v = getattr(other, name)
            if v is not None:
                changes[name] = v

        changes['timeout'] = other.timeout
        changes['quiet_level'] = other.quiet_level

        return replace(self, **changes)

    @classmethod
    def from_env(cls) -> ForwarderConfig:
        return cls(
            endpoint=first_env(*ENDPOINT_ENV_VARS),
            api_token=first_env(*API_TOKEN_ENV_VARS),
            service_name=(first_env(*SERVICE_NAME_ENV_VARS)
                          or DEFAULT_SERVICE_NAME),
            service_namespace=(getenv('KIROKU_SERVICE_NAMESPACE')
                               or DEFAULT_SERVICE_NAMESPACE),
            cloud_platform=(getenv('KIROKU_CLOUD_PLATFORM')
                            or DEFAULT_CLOUD_PLATFORM),
            host_name=getenv('KIROKU_HOST_NAME') or gethostname(),
            environment=first_env(*ENV_ENV_VARS) or DEFAULT_ENVIRONMENT,
            timeout=parse_timeout(getenv('KIROKU_TIMEOUT'),
                                  default=DEFAULT_TIMEOUT),
            quiet_level=parse_quiet(getenv('KIROKU_QUIET_LEVEL'),
                                    default_level=DEFAULT_QUIET_LEVEL),
        )


@dataclass(slots=True)
class LogEvent:
    content: str
    severity: str = DEFAULT_SEVERITY      # 'INFO' | 'WARN' | 'ERROR'
    attributes: dict[str, str] = field(default_factory=dict)
    timestamp: int = field(default_factory=now_ms)

    def __post_init__(self):
        if self.severity is None:
            self.severity = DEFAULT_SEVERITY
        self.severity = str(self.severity).upper()

    @classmethod
    def build(cls,
              content: str,
              severity: str | None = DEFAULT_SEVERITY,
              *,
              base: Mapping[str, str] | None = None,
              attributes: Mapping[str, Any] | None = None) -> LogEvent:
        """
        Build an event, capturing the timestamp first. Caller
        `attributes` win over `base` on key collision.
        """
        ts = now_ms()
        merged = dict(base) if base else {}
        if attributes:
            for k, v in attributes.items():
                merged[k] = v if isinstance(v, str) else str(v)
        return cls(content, severity, merged, ts)

    def to_payload(self) -> dict[str, Any]:
        return {
            'content': self.content,
            'severity': self.severity,
            'timestamp': self.timestamp,
            'attributes': self.attributes,
        }

    def to_json(self) -> bytes:
        # raises TypeError / ValueError for content json can't encode
        return json.dumps(self.to_payload(),
                          ensure_ascii=False,
                          allow_nan=False).encode('utf-8')


class DeliveryOutcome(str, Enum):
    DELIVERED = 'delivered'
    DISABLED = 'disabled'
    REJECTED = 'rejected'
    TIMEOUT = 'timeout'
    TRANSPORT_ERROR = 'transport_error'
    SERIALIZATION_ERROR = 'serialization_error'


@dataclass(frozen=True, slots=True)
class DeliveryResult:
    outcome: DeliveryOutcome
    status_code: int | None = None
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome in (DeliveryOutcome.DELIVERED,
                                DeliveryOutcome.DISABLED)

    @property
    def failed(self) -> bool:
        return not self.ok
