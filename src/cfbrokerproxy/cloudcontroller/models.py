"""Cloud Controller v2 resource models.

Every v2 resource arrives as ``{"metadata": {"guid": ...}, "entity": {...}}``.
Each dataclass exposes a ``from_resource`` constructor that pulls the fields
the broker needs out of that envelope and ignores the rest.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

# Schemaless JSON as returned by the Cloud Controller (credentials, parameters)
JSONValue = Union[str, int, float, bool, None, Dict[str, "JSONValue"], List["JSONValue"]]
JSONObject = Dict[str, JSONValue]

# Last operation states reported by the Cloud Controller
LAST_OPERATION_IN_PROGRESS = "in progress"
LAST_OPERATION_SUCCEEDED = "succeeded"
LAST_OPERATION_FAILED = "failed"


def _guid(resource: dict) -> str:
    return (resource.get("metadata") or {}).get("guid", "")


def _entity(resource: dict) -> dict:
    return resource.get("entity") or {}


@dataclass
class Filter:
    """Query filter, rendered as ``q=<type><operator><values>``.

    Multiple values are joined with commas, as the Cloud Controller expects
    for the ``IN`` operator.
    """

    type: str
    operator: str
    values: list[str]

    def format(self) -> str:
        return f"{self.type}{self.operator}{','.join(self.values)}"

    @classmethod
    def equals(cls, field_name: str, value: str) -> "Filter":
        return cls(type=field_name, operator=":", values=[value])


@dataclass
class LastOperation:
    """Asynchronous operation status attached to a service instance or key."""

    type: str = ""
    state: str = ""
    description: str = ""

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "LastOperation":
        data = data or {}
        return cls(
            type=data.get("type") or "",
            state=data.get("state") or "",
            description=data.get("description") or "",
        )

    @property
    def in_progress(self) -> bool:
        return self.state == LAST_OPERATION_IN_PROGRESS


@dataclass
class Service:
    """Service offering registered with the Cloud Controller."""

    guid: str
    label: str
    description: str = ""

    @classmethod
    def from_resource(cls, resource: dict) -> "Service":
        entity = _entity(resource)
        return cls(
            guid=_guid(resource),
            label=entity.get("label") or "",
            description=entity.get("description") or "",
        )


@dataclass
class ServicePlan:
    """Plan belonging to a service offering."""

    guid: str
    name: str
    service_guid: str = ""
    public: bool = False
    description: str = ""

    @classmethod
    def from_resource(cls, resource: dict) -> "ServicePlan":
        entity = _entity(resource)
        return cls(
            guid=_guid(resource),
            name=entity.get("name") or "",
            service_guid=entity.get("service_guid") or "",
            public=bool(entity.get("public", False)),
            description=entity.get("description") or "",
        )


@dataclass
class ServiceInstance:
    """Managed service instance."""

    guid: str
    name: str = ""
    space_guid: str = ""
    service_plan_guid: str = ""
    dashboard_url: str = ""
    last_operation: LastOperation = field(default_factory=LastOperation)

    @classmethod
    def from_resource(cls, resource: dict) -> "ServiceInstance":
        entity = _entity(resource)
        return cls(
            guid=_guid(resource),
            name=entity.get("name") or "",
            space_guid=entity.get("space_guid") or "",
            service_plan_guid=entity.get("service_plan_guid") or "",
            dashboard_url=entity.get("dashboard_url") or "",
            last_operation=LastOperation.from_dict(entity.get("last_operation")),
        )


@dataclass
class ServiceKey:
    """Credentials issued for a service instance."""

    guid: str
    name: str = ""
    service_instance_guid: str = ""
    credentials: JSONObject = field(default_factory=dict)

    @classmethod
    def from_resource(cls, resource: dict) -> "ServiceKey":
        entity = _entity(resource)
        return cls(
            guid=_guid(resource),
            name=entity.get("name") or "",
            service_instance_guid=entity.get("service_instance_guid") or "",
            credentials=entity.get("credentials") or {},
        )


@dataclass
class Space:
    """Organizational grouping that owns service instances."""

    guid: str
    name: str = ""
    organization_guid: str = ""

    @classmethod
    def from_resource(cls, resource: dict) -> "Space":
        entity = _entity(resource)
        return cls(
            guid=_guid(resource),
            name=entity.get("name") or "",
            organization_guid=entity.get("organization_guid") or "",
        )
