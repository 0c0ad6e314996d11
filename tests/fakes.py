"""In-memory Cloud Controller stand-in shared by unit and integration tests."""

from collections import Counter

from src.cfbrokerproxy.cloudcontroller import (
    LastOperation,
    Service,
    ServiceInstance,
    ServiceKey,
    ServicePlan,
    Space,
)
from src.cfbrokerproxy.cloudcontroller.models import LAST_OPERATION_IN_PROGRESS

MUTATING_CALLS = {
    "create_service_instance",
    "delete_service_instance",
    "create_service_key",
    "delete_service_key",
}


class FakeCloudControllerClient:
    """Records every call and answers from seeded records."""

    def __init__(self, services=None, plans=None, spaces=None, instances=None, keys=None):
        self.services = list(services or [])
        self.plans = list(plans or [])
        self.spaces = list(spaces if spaces is not None else [Space(guid="space-1", name="dev")])
        self.instances = list(instances or [])
        self.keys = list(keys or [])
        self.warnings = []
        self.calls = Counter()
        self.call_args = []
        self.create_state = LAST_OPERATION_IN_PROGRESS
        self.delete_state = LAST_OPERATION_IN_PROGRESS
        self.fail_with = {}

    def _record(self, _call, /, *args, **kwargs):
        self.calls[_call] += 1
        self.call_args.append((_call, args, kwargs))
        if _call in self.fail_with:
            raise self.fail_with[_call]

    @property
    def mutating_calls(self):
        return sum(count for name, count in self.calls.items() if name in MUTATING_CALLS)

    @staticmethod
    def _matches(record, filters):
        for f in filters:
            if getattr(record, f.type) not in f.values:
                return False
        return True

    def get_services(self, *filters):
        self._record("get_services", *filters)
        return [s for s in self.services if self._matches(s, filters)], list(self.warnings)

    def get_service_plans(self, *filters):
        self._record("get_service_plans", *filters)
        return [p for p in self.plans if self._matches(p, filters)], list(self.warnings)

    def get_spaces(self, *filters):
        self._record("get_spaces", *filters)
        return list(self.spaces), list(self.warnings)

    def get_service_instances(self, *filters):
        self._record("get_service_instances", *filters)
        return [i for i in self.instances if self._matches(i, filters)], list(self.warnings)

    def get_service_instance(self, guid):
        self._record("get_service_instance", guid)
        for instance in self.instances:
            if instance.guid == guid:
                return instance, list(self.warnings)
        return ServiceInstance(guid=guid), list(self.warnings)

    def create_service_instance(self, space_guid, service_plan_guid, name, accepts_incomplete, parameters=None):
        self._record(
            "create_service_instance",
            space_guid=space_guid,
            service_plan_guid=service_plan_guid,
            name=name,
            accepts_incomplete=accepts_incomplete,
            parameters=parameters,
        )
        instance = ServiceInstance(
            guid=f"guid-{name}",
            name=name,
            space_guid=space_guid,
            service_plan_guid=service_plan_guid,
            dashboard_url=f"https://dashboard.example.com/{name}",
            last_operation=LastOperation(type="create", state=self.create_state),
        )
        self.instances.append(instance)
        return instance, list(self.warnings)

    def delete_service_instance(self, guid, accepts_incomplete):
        self._record("delete_service_instance", guid, accepts_incomplete=accepts_incomplete)
        self.instances = [i for i in self.instances if i.guid != guid]
        return (
            ServiceInstance(guid=guid, last_operation=LastOperation(type="delete", state=self.delete_state)),
            list(self.warnings),
        )

    def get_service_keys(self, *filters):
        self._record("get_service_keys", *filters)
        return [k for k in self.keys if self._matches(k, filters)], list(self.warnings)

    def create_service_key(self, service_instance_guid, name, accepts_incomplete, parameters=None):
        self._record(
            "create_service_key",
            service_instance_guid=service_instance_guid,
            name=name,
            accepts_incomplete=accepts_incomplete,
            parameters=parameters,
        )
        key = ServiceKey(
            guid=f"key-{name}",
            name=name,
            service_instance_guid=service_instance_guid,
            credentials={"uri": f"redis://{name}.example.com:6379", "port": 6379, "tls": True},
        )
        self.keys.append(key)
        return key, list(self.warnings)

    def delete_service_key(self, guid, accepts_incomplete):
        self._record("delete_service_key", guid, accepts_incomplete=accepts_incomplete)
        self.keys = [k for k in self.keys if k.guid != guid]
        return ServiceKey(guid=guid), list(self.warnings)


def seeded_client(description="A Redis service"):
    """One service with one plan, the shape most tests start from."""
    return FakeCloudControllerClient(
        services=[Service(guid="s1", label="redis", description=description)],
        plans=[ServicePlan(guid="p1", name="small", service_guid="s1", description="Small plan")],
    )
