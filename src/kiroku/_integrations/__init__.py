__all__ = ['DropInternalFilter',
           'ForwardingHandler',
           'KirokuJSONFormatter']

from ._logging import (
                       DropInternalFilter,
                       ForwardingHandler,
                       KirokuJSONFormatter,
)
