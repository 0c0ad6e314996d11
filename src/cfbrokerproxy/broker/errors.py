"""Broker proxy errors raised before any mutating Cloud Controller call.

Each error also derives from the matching openbrokerapi exception so the
protocol layer can translate it into the right HTTP response (e.g. 410 Gone
for a deprovision or unbind of something that no longer exists).
"""

from __future__ import annotations

from typing import Any

from openbrokerapi.errors import (
    ErrBindingDoesNotExist,
    ErrInstanceDoesNotExist,
    ServiceException,
)


class BrokerProxyError(ServiceException):
    """Structured error for broker proxy operations."""

    code = "broker_proxy_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        # Bypass the fixed messages of the openbrokerapi subclasses
        Exception.__init__(self, message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "retryable": False,
        }


class ServiceInstanceNotFound(BrokerProxyError, ErrInstanceDoesNotExist):
    """No service instance carries the requested name."""

    code = "service_instance_not_found"

    def __init__(self, name: str):
        super().__init__(
            f"Service instance with name {name} not found",
            details={"name": name},
        )
        self.name = name


class ServiceKeyNotFound(BrokerProxyError, ErrBindingDoesNotExist):
    """No service key carries the requested binding name."""

    code = "service_key_not_found"

    def __init__(self, name: str):
        super().__init__(
            f"Service key '{name}' not found",
            details={"name": name},
        )
        self.name = name


class NoSpaceAvailable(BrokerProxyError):
    """The Cloud Controller user cannot see any space to provision into."""

    code = "no_space_available"

    def __init__(self):
        super().__init__("Available spaces not found")
