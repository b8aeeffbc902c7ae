"""
Tests for CleanupCoordinator.
"""
from unittest.mock import patch

from app.core.errors import StoreUnavailableError
from app.services.push.cleanup_coordinator import CleanupCoordinator
from tests.conftest import make_token


class TestReconcileFailures:
    """Tests for reconcile_failures."""

    def test_hint_resolves_owner(self, registry, store):
        registry.register("u7", make_token("u7"))
        coordinator = CleanupCoordinator(registry)

        result = coordinator.reconcile_failures([make_token("u7")], ["u7"])

        assert result.removed_count == 1
        assert result.removed_user_ids == ["u7"]
        assert store.get("u7") is None
        assert registry.get("u7") is None

    def test_reverse_lookup_without_hint(self, registry):
        registry.register("u1", make_token("u1"))
        registry.register("u2", make_token("u2"))
        coordinator = CleanupCoordinator(registry)

        result = coordinator.reconcile_failures([make_token("u2")])

        assert result.removed_user_ids == ["u2"]
        assert registry.get("u1") is not None

    def test_none_hint_falls_back_to_lookup(self, registry):
        registry.register("u1", make_token("u1"))
        registry.register("u2", make_token("u2"))
        coordinator = CleanupCoordinator(registry)

        result = coordinator.reconcile_failures([make_token("u1"), make_token("u2")], ["u1", None])

        assert sorted(result.removed_user_ids) == ["u1", "u2"]

    def test_orphaned_token_is_left_alone(self, registry):
        registry.register("u1", make_token("u1"))
        coordinator = CleanupCoordinator(registry)

        result = coordinator.reconcile_failures([make_token("nobody")])

        assert result.removed_count == 0
        assert result.orphaned_tokens == [make_token("nobody")]
        assert registry.count() == 1

    def test_reconcile_twice_is_noop(self, registry):
        registry.register("u1", make_token("u1"))
        registry.register("u7", make_token("u7"))
        coordinator = CleanupCoordinator(registry)

        first = coordinator.reconcile_failures([make_token("u7")], ["u7"])
        second = coordinator.reconcile_failures([make_token("u7")], ["u7"])

        assert first.removed_count == 1
        assert second.removed_count == 0
        assert registry.count() == 1

    def test_store_failure_is_reported_per_user(self, registry, store):
        registry.register("u1", make_token("u1"))
        registry.register("u2", make_token("u2"))
        coordinator = CleanupCoordinator(registry)
        real_delete = store.delete

        def flaky_delete(key):
            if key == "u1":
                raise StoreUnavailableError("down")
            real_delete(key)

        with patch.object(store, "delete", side_effect=flaky_delete):
            result = coordinator.reconcile_failures(
                [make_token("u1"), make_token("u2")], ["u1", "u2"]
            )

        assert result.failed_user_ids == ["u1"]
        assert result.removed_user_ids == ["u2"]
        assert registry.get("u1") is not None

    def test_empty_input(self, registry):
        result = CleanupCoordinator(registry).reconcile_failures([])
        assert result.removed_count == 0
        assert result.orphaned_tokens == []

    def test_reregistered_user_is_kept(self, registry, store):
        registry.register("u7", make_token("fresh"))
        coordinator = CleanupCoordinator(registry)

        result = coordinator.reconcile_failures([make_token("dead")], ["u7"])

        assert result.removed_count == 0
        assert store.get("u7").token == make_token("fresh")

    def test_every_owner_of_shared_token_removed(self, registry, store):
        shared = make_token("shared")
        registry.register("u1", shared)
        registry.register("u2", shared)
        coordinator = CleanupCoordinator(registry)

        result = coordinator.reconcile_failures([shared], [["u1", "u2"]])

        assert sorted(result.removed_user_ids) == ["u1", "u2"]
        assert store.get("u1") is None
        assert store.get("u2") is None

    def test_holders_missing_from_hint_are_found(self, registry):
        shared = make_token("shared")
        registry.register("u1", shared)
        registry.register("u2", shared)

        result = CleanupCoordinator(registry).reconcile_failures([shared], ["u1"])

        assert sorted(result.removed_user_ids) == ["u1", "u2"]
