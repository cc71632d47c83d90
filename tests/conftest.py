"""
Shared fixtures: an in-memory object store with the API server semantics the
engine relies on (resourceVersion compare-and-swap, status subresource,
finalizer-gated deletion), plus a recording notifier.
"""

import copy
import logging
import uuid
from typing import Optional

import pytest

from registry_operator.config import settings
from registry_operator.errors import ConflictError, NotFoundError
from registry_operator.models import ObjectKey, ReconcileContext
from registry_operator.renderer import TemplateRenderer
from registry_operator.store import set_owner_link


class FakeObjectStore:
    def __init__(self):
        self.objects = {}
        self.writes = []
        self._version = 0
        self._failures = {}

    # --- test helpers ---

    def fail_next(self, op: str, kind: str, exc: Exception):
        """Make the next `op` on `kind` raise `exc` instead of running."""
        self._failures.setdefault((op, kind), []).append(exc)

    def _maybe_fail(self, op: str, kind: str):
        pending = self._failures.get((op, kind))
        if pending:
            raise pending.pop(0)

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def put(self, obj: dict) -> dict:
        """Seed an object directly, bypassing write tracking."""
        obj = copy.deepcopy(obj)
        meta = obj.setdefault("metadata", {})
        meta.setdefault("uid", str(uuid.uuid4()))
        meta["resourceVersion"] = self._next_version()
        self.objects[(obj["kind"], ObjectKey.from_object(obj))] = obj
        return copy.deepcopy(obj)

    def raw(self, kind: str, key: ObjectKey) -> dict:
        return self.objects.get((kind, key))

    def mark_deleted(self, kind: str, key: ObjectKey):
        """What the API server does on DELETE."""
        obj = self.objects[(kind, key)]
        if obj["metadata"].get("finalizers"):
            obj["metadata"]["deletionTimestamp"] = "2024-01-01T00:00:00Z"
            obj["metadata"]["resourceVersion"] = self._next_version()
        else:
            del self.objects[(kind, key)]

    def set_deployment_available(self, key: ObjectKey, available: bool):
        obj = self.objects[("Deployment", key)]
        obj["status"] = {"conditions": [
            {"type": "Available", "status": "True" if available else "False"},
        ]}
        obj["metadata"]["resourceVersion"] = self._next_version()

    def writes_of(self, op: str) -> list:
        return [(kind, key) for o, kind, key in self.writes if o == op]

    # --- store interface ---

    def get(self, kind: str, key: ObjectKey, ctx: ReconcileContext) -> dict:
        ctx.timeout()
        self._maybe_fail("get", kind)
        obj = self.objects.get((kind, key))
        if obj is None:
            raise NotFoundError(f"{kind} {key} not found")
        return copy.deepcopy(obj)

    def create(self, obj: dict, ctx: ReconcileContext) -> dict:
        ctx.timeout()
        kind, key = obj["kind"], ObjectKey.from_object(obj)
        self._maybe_fail("create", kind)
        if (kind, key) in self.objects:
            raise ConflictError(f"{kind} {key} already exists")
        stored = copy.deepcopy(obj)
        stored.pop("status", None)
        stored["metadata"]["uid"] = str(uuid.uuid4())
        stored["metadata"]["resourceVersion"] = self._next_version()
        stored["metadata"]["creationTimestamp"] = "2024-01-01T00:00:00Z"
        self.objects[(kind, key)] = stored
        self.writes.append(("create", kind, key))
        return copy.deepcopy(stored)

    def _check_version(self, obj: dict) -> dict:
        kind, key = obj["kind"], ObjectKey.from_object(obj)
        current = self.objects.get((kind, key))
        if current is None:
            raise NotFoundError(f"{kind} {key} not found")
        if obj["metadata"].get("resourceVersion") != current["metadata"]["resourceVersion"]:
            raise ConflictError(f"{kind} {key} has been modified")
        return current

    def update(self, obj: dict, ctx: ReconcileContext) -> dict:
        ctx.timeout()
        kind, key = obj["kind"], ObjectKey.from_object(obj)
        self._maybe_fail("update", kind)
        current = self._check_version(obj)
        stored = copy.deepcopy(obj)
        # status and server-owned metadata are not writable through update
        if "status" in current:
            stored["status"] = current["status"]
        else:
            stored.pop("status", None)
        for field in ("uid", "creationTimestamp", "deletionTimestamp"):
            if field in current["metadata"]:
                stored["metadata"][field] = current["metadata"][field]
        stored["metadata"]["resourceVersion"] = self._next_version()
        self.writes.append(("update", kind, key))
        if stored["metadata"].get("deletionTimestamp") and not stored["metadata"].get("finalizers"):
            del self.objects[(kind, key)]
        else:
            self.objects[(kind, key)] = stored
        return copy.deepcopy(stored)

    def update_status(self, obj: dict, ctx: ReconcileContext) -> dict:
        ctx.timeout()
        kind, key = obj["kind"], ObjectKey.from_object(obj)
        self._maybe_fail("update_status", kind)
        current = self._check_version(obj)
        current["status"] = copy.deepcopy(obj.get("status"))
        current["metadata"]["resourceVersion"] = self._next_version()
        self.writes.append(("update_status", kind, key))
        return copy.deepcopy(current)

    @staticmethod
    def set_owner_link(child: dict, parent: dict):
        set_owner_link(child, parent)


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def notify(self, obj: dict, severity: str, reason: str, message: str):
        self.events.append((severity, reason, message))

    def log_result(self, obj: dict, result):
        if result.value != "Unchanged":
            self.events.append(("Normal", f"Service{result.value}", ""))


@pytest.fixture
def store():
    return FakeObjectStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def renderer():
    return TemplateRenderer()


@pytest.fixture
def ctx():
    return ReconcileContext(logger=logging.getLogger("tests"))


@pytest.fixture
def key():
    return ObjectKey(namespace="ns1", name="demo")


def make_registry(name: str = "demo", namespace: str = "ns1", spec: Optional[dict] = None, **meta) -> dict:
    metadata = {"name": name, "namespace": namespace}
    metadata.update(meta)
    return {
        "apiVersion": settings.api_version,
        "kind": settings.CRD_KIND,
        "metadata": metadata,
        "spec": spec if spec is not None else {"replicas": 1, "rest": {"image": "img:v1"}},
    }


@pytest.fixture
def registry(store):
    return store.put(make_registry())


@pytest.fixture(name="make_registry")
def make_registry_fixture():
    return make_registry
