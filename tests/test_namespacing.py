import pytest

from bot_session_storage.exceptions import SessionValidationError
from bot_session_storage.namespacing import namespace_key, split_namespaced_key


class TestNamespaceKey:
    def test_basic(self):
        assert namespace_key(42, "settings") == "bot42/settings"

    def test_empty_key(self):
        assert namespace_key(7, "") == "bot7/"

    def test_key_with_separator(self):
        assert namespace_key(1, "chat/100/state") == "bot1/chat/100/state"

    def test_deterministic(self):
        assert namespace_key(5, "k") == namespace_key(5, "k")

    def test_no_collision_across_tenants(self):
        """Adversarial pairs that naive concatenation would merge."""
        pairs = [
            (1, "1/a"),
            (11, "a"),
            (1, "a"),
            (11, ""),
            (1, "1/"),
            (0, ""),
            (0, "/"),
            (10, "/"),
            (1, "0/"),
        ]
        namespaced = [namespace_key(t, k) for t, k in pairs]
        assert len(set(namespaced)) == len(pairs)

    def test_injective_within_tenant(self):
        keys = ["a", "a/", "/a", "a/b", "a//b", "", "/"]
        assert len({namespace_key(3, k) for k in keys}) == len(keys)

    @pytest.mark.parametrize("tenant_id", [-1, True, 1.5, "1", None])
    def test_invalid_tenant_rejected(self, tenant_id):
        with pytest.raises(SessionValidationError):
            namespace_key(tenant_id, "k")


class TestSplitNamespacedKey:
    def test_basic(self):
        assert split_namespaced_key("bot42/settings") == (42, "settings")

    def test_key_containing_separator(self):
        assert split_namespaced_key("bot1/1/a") == (1, "1/a")

    def test_inverse_of_namespace_key(self):
        for tenant_id, key in [(0, ""), (11, "a"), (1, "1/a"), (99, "ü/😀")]:
            assert split_namespaced_key(namespace_key(tenant_id, key)) == (tenant_id, key)

    @pytest.mark.parametrize(
        "value",
        ["settings", "bot/settings", "botx/settings", "user1/a", "bot01/a", "bot1"],
    )
    def test_malformed_raises(self, value):
        with pytest.raises(ValueError):
            split_namespaced_key(value)
