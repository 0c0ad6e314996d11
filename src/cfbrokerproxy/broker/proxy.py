"""Broker proxy - maps Open Service Broker calls onto the Cloud Controller.

The broker protocol identifies instances and bindings by caller-chosen
names while the Cloud Controller is GUID-keyed, so every mutating call first
resolves the name with an exact-match filter and then acts on the GUID.
When several records share a name the first one returned wins; the
ambiguity is logged.

Two values are cached for the lifetime of the process and never
invalidated: the service catalog and the space GUID instances are created
in. Both are computed once under a lock; a failed computation caches nothing.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, List, Optional, TypeVar

import structlog
from openbrokerapi.catalog import ServicePlan
from openbrokerapi.service_broker import (
    BindDetails,
    Binding,
    DeprovisionDetails,
    DeprovisionServiceSpec,
    LastOperation,
    OperationState,
    ProvisionDetails,
    ProvisionedServiceSpec,
    ProvisionState,
    Service,
    ServiceBroker,
    UnbindDetails,
    UnbindSpec,
    UpdateDetails,
    UpdateServiceSpec,
)

from ..cloudcontroller import CloudControllerClient, Filter, ServiceInstance, Warnings
from ..cloudcontroller.models import (
    LAST_OPERATION_FAILED,
    LAST_OPERATION_IN_PROGRESS,
    LAST_OPERATION_SUCCEEDED,
)
from .errors import NoSpaceAvailable, ServiceInstanceNotFound, ServiceKeyNotFound

logger = structlog.get_logger(__name__)

DESCRIPTION_MAX_LENGTH = 254

T = TypeVar("T")

_OPERATION_STATES = {
    LAST_OPERATION_IN_PROGRESS: OperationState.IN_PROGRESS,
    LAST_OPERATION_SUCCEEDED: OperationState.SUCCEEDED,
    LAST_OPERATION_FAILED: OperationState.FAILED,
}


def slice_description(original: str, max_length: int = DESCRIPTION_MAX_LENGTH) -> str:
    """Truncate a description to the broker protocol limit."""
    if len(original) > max_length:
        return original[:max_length]
    return original


def map_operation_state(state: str) -> OperationState:
    """Map a Cloud Controller last-operation state onto the protocol enum.

    Unknown or empty states report IN_PROGRESS so the platform keeps polling.
    """
    return _OPERATION_STATES.get(state, OperationState.IN_PROGRESS)


class _ComputeOnce:
    """Holds a value computed by the first successful caller."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value: Any = None
        self._set = False

    @property
    def value(self) -> Any:
        return self._value

    def get(self, compute: Callable[[], T]) -> T:
        if self._set:
            return self._value
        with self._lock:
            if not self._set:
                self._value = compute()
                self._set = True
        return self._value


class BrokerProxy(ServiceBroker):
    """Open Service Broker implementation backed by a Cloud Controller."""

    def __init__(
        self,
        api_client: CloudControllerClient,
        description_max_length: int = DESCRIPTION_MAX_LENGTH,
    ):
        """
        Initialize broker proxy.

        Args:
            api_client: Authenticated Cloud Controller client
            description_max_length: Catalog description limit (protocol maximum 254)
        """
        self.api_client = api_client
        self.description_max_length = description_max_length
        self._catalog = _ComputeOnce()
        self._space_guid = _ComputeOnce()

    @property
    def cached_catalog(self) -> Optional[List[Service]]:
        return self._catalog.value

    @property
    def space_guid(self) -> Optional[str]:
        return self._space_guid.value

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def catalog(self) -> List[Service]:
        """Return the service catalog, building it on first use."""
        return self._catalog.get(self._build_catalog)

    def _build_catalog(self) -> List[Service]:
        services, warnings = self.api_client.get_services()
        self._log_warnings("catalog", warnings)

        catalog = []
        for s in services:
            catalog.append(
                Service(
                    id=s.guid,
                    name=s.label,
                    description=slice_description(s.description, self.description_max_length),
                    bindable=True,
                    plan_updateable=False,
                    plans=self._get_service_plans(s.guid),
                )
            )

        logger.info("catalog_built", services=len(catalog))
        return catalog

    def _get_service_plans(self, service_guid: str) -> List[ServicePlan]:
        plans, warnings = self.api_client.get_service_plans(
            Filter.equals("service_guid", service_guid)
        )
        self._log_warnings("catalog", warnings)

        return [
            ServicePlan(
                id=p.guid,
                name=p.name,
                description=slice_description(p.description, self.description_max_length),
            )
            for p in plans
        ]

    # ------------------------------------------------------------------
    # Instances
    # ------------------------------------------------------------------

    def provision(
        self,
        instance_id: str,
        details: ProvisionDetails,
        async_allowed: bool,
        **kwargs,
    ) -> ProvisionedServiceSpec:
        logger.info(
            "provision_requested",
            instance_id=instance_id,
            plan_id=details.plan_id,
            async_allowed=async_allowed,
        )
        space_guid = self._space_guid.get(self._resolve_space_guid)

        instance, warnings = self.api_client.create_service_instance(
            space_guid=space_guid,
            service_plan_guid=details.plan_id,
            name=instance_id,
            accepts_incomplete=async_allowed,
            parameters={},
        )
        self._log_warnings("provision", warnings)

        is_async = instance.last_operation.in_progress
        logger.info(
            "instance_created",
            instance_id=instance_id,
            instance_guid=instance.guid,
            state=instance.last_operation.state,
        )
        return ProvisionedServiceSpec(
            state=ProvisionState.IS_ASYNC if is_async else ProvisionState.SUCCESSFUL_CREATED,
            dashboard_url=instance.dashboard_url or None,
            operation=instance.guid,
        )

    def _resolve_space_guid(self) -> str:
        spaces, warnings = self.api_client.get_spaces()
        self._log_warnings("provision", warnings)
        if not spaces:
            logger.error("no_space_available")
            raise NoSpaceAvailable()

        logger.info("default_space_resolved", space_guid=spaces[0].guid, space_name=spaces[0].name)
        return spaces[0].guid

    def deprovision(
        self,
        instance_id: str,
        details: DeprovisionDetails,
        async_allowed: bool,
        **kwargs,
    ) -> DeprovisionServiceSpec:
        logger.info("deprovision_requested", instance_id=instance_id, async_allowed=async_allowed)
        instance = self._find_first_service_instance_with_name(instance_id)

        deleted, warnings = self.api_client.delete_service_instance(
            instance.guid, accepts_incomplete=True
        )
        self._log_warnings("deprovision", warnings)

        logger.info(
            "instance_deleted",
            instance_id=instance_id,
            instance_guid=deleted.guid,
            state=deleted.last_operation.state,
        )
        return DeprovisionServiceSpec(
            is_async=deleted.last_operation.in_progress,
            operation=deleted.guid,
        )

    def update(
        self,
        instance_id: str,
        details: UpdateDetails,
        async_allowed: bool,
        **kwargs,
    ) -> UpdateServiceSpec:
        # Plans are not updatable; nothing is forwarded.
        return UpdateServiceSpec(is_async=False)

    def last_operation(
        self,
        instance_id: str,
        operation_data: Optional[str],
        **kwargs,
    ) -> LastOperation:
        if operation_data:
            instance, warnings = self.api_client.get_service_instance(operation_data)
            self._log_warnings("last_operation", warnings)
        else:
            instance = self._find_first_service_instance_with_name(instance_id)

        return LastOperation(
            state=map_operation_state(instance.last_operation.state),
            description=instance.last_operation.description,
        )

    # ------------------------------------------------------------------
    # Bindings
    # ------------------------------------------------------------------

    def bind(
        self,
        instance_id: str,
        binding_id: str,
        details: BindDetails,
        async_allowed: bool = False,
        **kwargs,
    ) -> Binding:
        logger.info("bind_requested", instance_id=instance_id, binding_id=binding_id)
        instance = self._find_first_service_instance_with_name(instance_id)

        service_key, warnings = self.api_client.create_service_key(
            service_instance_guid=instance.guid,
            name=binding_id,
            accepts_incomplete=True,
            parameters={},
        )
        self._log_warnings("bind", warnings)

        logger.info("service_key_created", binding_id=binding_id, service_key_guid=service_key.guid)
        return Binding(credentials=service_key.credentials)

    def unbind(
        self,
        instance_id: str,
        binding_id: str,
        details: UnbindDetails,
        async_allowed: bool = False,
        **kwargs,
    ) -> UnbindSpec:
        logger.info("unbind_requested", instance_id=instance_id, binding_id=binding_id)
        service_keys, warnings = self.api_client.get_service_keys(
            Filter.equals("name", binding_id)
        )
        self._log_warnings("unbind", warnings)

        if not service_keys:
            logger.warning("service_key_not_found", binding_id=binding_id)
            raise ServiceKeyNotFound(binding_id)
        self._warn_if_ambiguous("service_key", binding_id, len(service_keys))

        _, warnings = self.api_client.delete_service_key(
            service_keys[0].guid, accepts_incomplete=False
        )
        self._log_warnings("unbind", warnings)

        logger.info("service_key_deleted", binding_id=binding_id, service_key_guid=service_keys[0].guid)
        return UnbindSpec(is_async=False)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _find_first_service_instance_with_name(self, name: str) -> ServiceInstance:
        instances, warnings = self.api_client.get_service_instances(Filter.equals("name", name))
        self._log_warnings("instance_lookup", warnings)

        if not instances:
            logger.warning("service_instance_not_found", instance_id=name)
            raise ServiceInstanceNotFound(name)
        self._warn_if_ambiguous("service_instance", name, len(instances))
        return instances[0]

    def _warn_if_ambiguous(self, kind: str, name: str, matches: int) -> None:
        if matches > 1:
            logger.warning("ambiguous_name_lookup", kind=kind, name=name, matches=matches)

    def _log_warnings(self, operation: str, warnings: Warnings) -> None:
        for warning in warnings:
            logger.warning("cc_warning", operation=operation, warning=warning)
