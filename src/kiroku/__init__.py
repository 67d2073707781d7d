"""Top-level package for Kiroku."""
from __future__ import annotations

__all__ = [
    'setup_logging',
    'reset_logging',
    # Classes
    'Forwarder',
    'ForwarderConfig',
    'LogEvent',
    'DeliveryOutcome',
    'DeliveryResult',
    'ForwardingHandler',
    'KirokuJSONFormatter',
    'version',
]

from logging import NullHandler

from ._api import reset_logging, setup_logging
from ._forwarder import Forwarder
from ._integrations import ForwardingHandler, KirokuJSONFormatter
from ._log import LOG
from ._models import (DeliveryOutcome,
                      DeliveryResult,
                      ForwarderConfig,
                      LogEvent)

# Set up logging to ``/dev/null`` like a library is supposed to.
# http://docs.python.org/3.3/howto/logging.html#configuring-logging-for-a-library
LOG.addHandler(NullHandler())


def version():
    from importlib.metadata import version
    __version__ = version('kiroku')
    return __version__
