"""Tests for the connection registry."""
import pytest

from localchat.chat.registry import ConnectionRegistry, DuplicateRegistration, build_identity


class TestConnectionRegistry:
    """Tests for register/lookup/unregister."""

    def test_register_builds_identity(self):
        registry = ConnectionRegistry()
        identity = registry.register("c1", "alice", "10.0.0.5")
        assert identity == "alice (10.0.0.5)"
        assert registry.lookup("c1") == "alice (10.0.0.5)"

    def test_lookup_unknown_connection(self):
        assert ConnectionRegistry().lookup("nobody") is None

    def test_duplicate_registration_raises(self):
        registry = ConnectionRegistry()
        registry.register("c1", "alice", "10.0.0.5")
        with pytest.raises(DuplicateRegistration):
            registry.register("c1", "mallory", "10.0.0.6")
        # The original identity is untouched
        assert registry.lookup("c1") == "alice (10.0.0.5)"

    def test_unregister_returns_identity(self):
        registry = ConnectionRegistry()
        registry.register("c1", "alice", "10.0.0.5")
        assert registry.unregister("c1") == "alice (10.0.0.5)"
        assert registry.lookup("c1") is None
        assert registry.count() == 0

    def test_unregister_unknown_returns_none(self):
        """A connection that never joined has nothing to unregister."""
        assert ConnectionRegistry().unregister("c1") is None

    def test_snapshot_in_join_order(self):
        registry = ConnectionRegistry()
        registry.register("c3", "carol", "10.0.0.7")
        registry.register("c1", "alice", "10.0.0.5")
        registry.register("c2", "bob", "10.0.0.6")
        registry.unregister("c1")
        registry.register("c4", "dave", "10.0.0.8")

        assert registry.snapshot_identities() == [
            "carol (10.0.0.7)",
            "bob (10.0.0.6)",
            "dave (10.0.0.8)",
        ]
        assert registry.count() == 3

    def test_colliding_identities_are_allowed(self):
        """Same name from the same address yields the same identity twice."""
        registry = ConnectionRegistry()
        registry.register("c1", "alice", "10.0.0.5")
        registry.register("c2", "alice", "10.0.0.5")
        assert registry.snapshot_identities() == ["alice (10.0.0.5)", "alice (10.0.0.5)"]

    def test_participant_record(self):
        registry = ConnectionRegistry()
        registry.register("c1", "alice", "10.0.0.5")
        participant = registry.get("c1")
        assert participant.username == "alice"
        assert participant.remoteAddress == "10.0.0.5"
        assert participant.connectionId == "c1"
        assert "c1" in registry

    def test_build_identity(self):
        assert build_identity("bob", "::1") == "bob (::1)"
