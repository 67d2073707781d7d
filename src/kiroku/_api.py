from __future__ import annotations

from logging import INFO, Formatter, Handler, Logger, StreamHandler, getLogger

from ._forwarder import Forwarder
from ._integrations import ForwardingHandler, KirokuJSONFormatter
from ._log import quiet_third_party_logs
from ._models import ForwarderConfig

_HANDLERS: dict[str | None, list[Handler]] = {}


def _attached_forwarder(handlers: list[Handler]) -> Forwarder | None:
    for handler in handlers:
        if isinstance(handler, ForwardingHandler):
            return handler.forwarder
    return None


def _detach(name: str | None) -> None:
    log = getLogger(name)
    for handler in _HANDLERS.pop(name, ()):
        log.removeHandler(handler)


def setup_logging(name: str | None = None,
                  *,
                  level: int = INFO,
                  formatter: type[Formatter] = KirokuJSONFormatter,
                  forwarder: Forwarder | None = None,
                  min_level: str | int | None = None,
                  reset: bool = False,
                  configure_root: bool = False) -> Logger:
    """
    JSON console handler once per logger, plus a
    :class:`ForwardingHandler` when an enabled `forwarder` is given.

    Repeat calls reuse the handlers already attached, unless `reset` is
    set or a different `forwarder` is passed.
    """
    if name is None and not configure_root:
        raise RuntimeError('Refusing to mutate root logger '
                           'formatting until configure_root=True')

    config = (forwarder.config if forwarder is not None
              else ForwarderConfig.from_env())
    if config.quiet_level is not None:
        quiet_third_party_logs(config.quiet_level)

    handlers = _HANDLERS.get(name)
    if handlers is not None and (
            reset or (forwarder is not None
                      and _attached_forwarder(handlers) is not forwarder)):
        _detach(name)
        handlers = None

    if handlers is None:
        handler = StreamHandler()
        handler.setFormatter(formatter())
        handlers = _HANDLERS[name] = [handler]

        if forwarder is not None and forwarder.enabled:
            kwargs = {} if min_level is None else {'min_level': min_level}
            handlers.append(ForwardingHandler(forwarder, **kwargs))

    log = getLogger(name)

    for handler in handlers:
        if handler not in log.handlers:
            log.addHandler(handler)

    log.setLevel(level)
    if name is not None:
        log.propagate = False

    return log


def reset_logging() -> None:
    """Detach every handler :func:`setup_logging` added."""
    for name in list(_HANDLERS):
        _detach(name)
        if name is not None:
            getLogger(name).propagate = True
