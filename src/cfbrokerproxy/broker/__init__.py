# Broker Layer - Open Service Broker handlers backed by the Cloud Controller

from .errors import BrokerProxyError, NoSpaceAvailable, ServiceInstanceNotFound, ServiceKeyNotFound
from .proxy import BrokerProxy, map_operation_state, slice_description

__all__ = [
    "BrokerProxy",
    "BrokerProxyError",
    "NoSpaceAvailable",
    "ServiceInstanceNotFound",
    "ServiceKeyNotFound",
    "map_operation_state",
    "slice_description",
]
