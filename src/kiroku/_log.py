from logging import WARNING, getLogger

LOG = getLogger('kiroku')

# Loggers the forwarder's own HTTP client writes to
TRANSPORT_LOGGERS = ('httpx', 'httpcore')


def quiet_third_party_logs(level: int = WARNING) -> None:
    # httpx logs every request at INFO
    for name in (
        'httpx',
        'httpcore',
        'httpcore.connection',
        'httpcore.http11',
        'uvicorn.access',
    ):
        getLogger(name).setLevel(level)


def is_transport_record(name: str) -> bool:
    return any(name == n or name.startswith(n + '.')
               for n in TRANSPORT_LOGGERS)


# Demo service logger
APP_LOG = getLogger('kiroku.app')
