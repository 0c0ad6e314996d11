# Cloud Controller v2 - outbound control API client and resource models

from .client import CloudControllerClient, CloudControllerError, Warnings
from .models import (
    Filter,
    JSONObject,
    JSONValue,
    LastOperation,
    Service,
    ServiceInstance,
    ServiceKey,
    ServicePlan,
    Space,
)

__all__ = [
    "CloudControllerClient",
    "CloudControllerError",
    "Filter",
    "JSONObject",
    "JSONValue",
    "LastOperation",
    "Service",
    "ServiceInstance",
    "ServiceKey",
    "ServicePlan",
    "Space",
    "Warnings",
]
