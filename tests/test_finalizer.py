"""
Tests for the finalizer lifecycle: token handling and the deletion sequence.
"""

import pytest

from registry_operator.conditions import CONDITION_DEGRADED, get_condition
from registry_operator.config import settings
from registry_operator.errors import ConflictError, NotFoundError, StoreError
from registry_operator.finalizer import (
    add_finalizer, ensure_finalizer, finalize_registry, has_finalizer, remove_finalizer,
)

KIND = settings.CRD_KIND


@pytest.fixture
def deleting(store, ctx, key, make_registry):
    """A registry that carries the token and has been asked to delete."""
    store.put(make_registry(finalizers=[settings.FINALIZER]))
    store.mark_deleted(KIND, key)
    return store.get(KIND, key, ctx)


class TestTokenHelpers:
    def test_add_is_idempotent(self, make_registry):
        obj = make_registry()
        assert add_finalizer(obj) is True
        assert add_finalizer(obj) is False
        assert obj["metadata"]["finalizers"] == [settings.FINALIZER]

    def test_remove_keeps_foreign_tokens(self, make_registry):
        obj = make_registry(finalizers=["other.io/keep", settings.FINALIZER])
        assert remove_finalizer(obj) is True
        assert obj["metadata"]["finalizers"] == ["other.io/keep"]
        assert remove_finalizer(obj) is False


class TestEnsureFinalizer:
    def test_token_is_persisted(self, store, ctx, key, registry):
        ensure_finalizer(store, registry, ctx)
        assert has_finalizer(store.raw(KIND, key))
        assert store.writes_of("update") == [(KIND, key)]

    def test_no_write_when_present(self, store, ctx, key, make_registry):
        obj = store.put(make_registry(finalizers=[settings.FINALIZER]))
        ensure_finalizer(store, obj, ctx)
        assert store.writes == []

    def test_stale_version_conflicts(self, store, ctx, key, registry):
        store.raw(KIND, key)["metadata"]["resourceVersion"] = "changed"
        with pytest.raises(ConflictError):
            ensure_finalizer(store, registry, ctx)


class TestFinalizeRegistry:
    def test_full_sequence_removes_object(self, store, ctx, key, notifier, deleting):
        requeue = finalize_registry(store, deleting, notifier, ctx)
        assert requeue is False
        assert store.raw(KIND, key) is None
        assert [e[1] for e in notifier.events] == ["Deleting"]
        assert store.writes_of("update_status") == [(KIND, key), (KIND, key)]
        assert store.writes_of("update") == [(KIND, key)]

    def test_degraded_goes_unknown_then_true(self, store, ctx, key, notifier, deleting, monkeypatch):
        seen = []
        original = store.update_status

        def recording_update_status(obj, ctx):
            seen.append(get_condition(obj["status"]["conditions"], CONDITION_DEGRADED)["status"])
            return original(obj, ctx)

        monkeypatch.setattr(store, "update_status", recording_update_status)
        finalize_registry(store, deleting, notifier, ctx)
        assert seen == ["Unknown", "True"]

    def test_cleanup_runs_before_token_removal(self, store, ctx, key, deleting):
        class CheckingNotifier:
            def notify(self, obj, severity, reason, message):
                assert has_finalizer(store.raw(KIND, key))
                self.called = True

        n = CheckingNotifier()
        finalize_registry(store, deleting, n, ctx)
        assert n.called

    def test_conflict_on_status_write_is_tolerated(self, store, ctx, key, notifier, deleting):
        store.fail_next("update_status", KIND, ConflictError("stale"))
        assert finalize_registry(store, deleting, notifier, ctx) is False
        assert store.raw(KIND, key) is None

    def test_not_found_on_reread_ends_sequence(self, store, ctx, key, notifier, deleting):
        store.fail_next("get", KIND, NotFoundError("gone"))
        assert finalize_registry(store, deleting, notifier, ctx) is False
        assert store.writes_of("update") == []

    def test_not_found_on_first_status_write_still_runs_cleanup(self, store, ctx, key, notifier, deleting):
        store.fail_next("update_status", KIND, NotFoundError("gone"))
        assert finalize_registry(store, deleting, notifier, ctx) is False
        assert [e[1] for e in notifier.events] == ["Deleting"]

    def test_object_removed_elsewhere_still_runs_cleanup(self, store, ctx, key, notifier, deleting):
        del store.objects[(KIND, key)]
        assert finalize_registry(store, deleting, notifier, ctx) is False
        assert [e[1] for e in notifier.events] == ["Deleting"]
        assert store.writes_of("update") == []

    def test_not_found_on_second_status_write_ends_sequence(self, store, ctx, key, notifier, deleting,
                                                             monkeypatch):
        original = store.update_status
        calls = []

        def second_write_not_found(obj, ctx):
            calls.append(obj)
            if len(calls) == 2:
                raise NotFoundError("gone")
            return original(obj, ctx)

        monkeypatch.setattr(store, "update_status", second_write_not_found)
        assert finalize_registry(store, deleting, notifier, ctx) is False
        assert store.writes_of("update") == []

    def test_conflict_on_token_removal_requeues_while_token_present(
            self, store, ctx, key, notifier, deleting):
        store.fail_next("update", KIND, ConflictError("stale"))
        assert finalize_registry(store, deleting, notifier, ctx) is True
        assert has_finalizer(store.raw(KIND, key))

    def test_conflict_on_token_removal_is_benign_once_token_gone(
            self, store, ctx, key, notifier, deleting, monkeypatch):
        def concurrent_removal(obj, ctx):
            # another delivery finished first and the object is gone
            del store.objects[(KIND, key)]
            raise ConflictError("stale")

        monkeypatch.setattr(store, "update", concurrent_removal)
        assert finalize_registry(store, deleting, notifier, ctx) is False

    def test_other_errors_propagate(self, store, ctx, key, notifier, deleting):
        store.fail_next("update", KIND, StoreError("etcd unavailable", status=503))
        with pytest.raises(StoreError, match="etcd unavailable"):
            finalize_registry(store, deleting, notifier, ctx)
        assert has_finalizer(store.raw(KIND, key))
