"""
Tests for the Cosmos DB ledger.

The batch logic is tested against a mocked container so no account is
needed. TestCosmosLedgerLive runs the same contract against a real account
when BOT_SESSIONS_COSMOS_ENDPOINT is set.
"""

import asyncio
import json
import os
import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from azure.cosmos.exceptions import (
    CosmosBatchOperationError,
    CosmosHttpResponseError,
    CosmosResourceExistsError,
)

from bot_session_storage.exceptions import (
    AuthenticationError,
    StorageConnectionError,
    StorageIOError,
    StoreNotInitializedError,
)
from bot_session_storage.ledger.cosmos import (
    COUNTER_ID,
    CosmosLedger,
    CosmosLedgerConfig,
    key_item_id,
)
from bot_session_storage.limits import MAX_SESSION_COUNT, MAX_SESSION_KEY_LENGTH

# Cosmos rejects items larger than this
MAX_ITEM_BYTES = 2 * 1024 * 1024


def batch_error(index: int, status: int) -> CosmosBatchOperationError:
    """Batch failure as the SDK reports it: failed op plus 424 for the rest."""
    responses = [{"statusCode": 424}, {"statusCode": 424}]
    responses[index] = {"statusCode": status}
    return CosmosBatchOperationError(
        error_index=index,
        headers={},
        status_code=status,
        message="Batch failed",
        operation_responses=responses,
    )


async def query_results(*docs):
    for doc in docs:
        yield doc


@pytest.fixture
def container() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def ledger(container: AsyncMock) -> CosmosLedger:
    """Ledger with capacity 3 wired to a mocked container."""
    config = CosmosLedgerConfig(endpoint="https://test.documents.azure.com:443/")
    instance = CosmosLedger(config, max_session_count=3)
    instance._container = container
    return instance


class TestTryReserve:
    @pytest.mark.asyncio
    async def test_single_transactional_batch(self, ledger, container):
        """Happy path is one batch: create the key item, bump the guarded counter."""
        assert await ledger.try_reserve(42, "settings") is True

        container.execute_item_batch.assert_awaited_once()
        kwargs = container.execute_item_batch.call_args.kwargs
        assert kwargs["partition_key"] == "42"
        create, increment = kwargs["batch_operations"]
        assert create == (
            "create",
            (
                {
                    "id": key_item_id("settings"),
                    "tenant_id": "42",
                    "type": "session_key",
                    "key": "settings",
                },
            ),
        )
        assert increment == (
            "patch",
            (COUNTER_ID, [{"op": "incr", "path": "/total", "value": 1}]),
            {"filter_predicate": "FROM c WHERE c.total < 3"},
        )

    def test_key_item_ids_are_safe(self):
        """Cosmos ids may not contain '/', '\\', '?' or '#'."""
        for key in ("chat/1", "a\\b", "what?", "#tag", "ü" * 63):
            item_id = key_item_id(key)
            assert not set(item_id) & set("/\\?#")
            assert len(item_id) < 255
        assert key_item_id("a") != key_item_id("b")

    @pytest.mark.asyncio
    async def test_items_stay_small_at_full_quota(self, ledger, container):
        """No item grows with the key count, unlike a single key array would."""
        key = "k" * (MAX_SESSION_KEY_LENGTH - 1)
        await ledger.try_reserve(42, key)

        create, increment = container.execute_item_batch.call_args.kwargs["batch_operations"]
        key_item = create[1][0]
        counter_at_capacity = {
            "id": COUNTER_ID,
            "tenant_id": "42",
            "type": "counter",
            "total": MAX_SESSION_COUNT,
        }
        assert len(json.dumps(key_item).encode("utf-8")) < 1024
        assert len(json.dumps(counter_at_capacity).encode("utf-8")) < 1024

        # The layout a single-array record would need for a full tenant
        array_record = {"id": "42", "tenant_id": "42", "keys": [key] * MAX_SESSION_COUNT}
        assert len(json.dumps(array_record).encode("utf-8")) > MAX_ITEM_BYTES

    @pytest.mark.asyncio
    async def test_existing_member_is_accepted(self, ledger, container):
        container.execute_item_batch.side_effect = batch_error(0, 409)

        assert await ledger.try_reserve(42, "settings") is True

    @pytest.mark.asyncio
    async def test_full_tenant_rejects_new_key(self, ledger, container):
        container.execute_item_batch.side_effect = batch_error(1, 412)

        assert await ledger.try_reserve(42, "settings") is False
        assert container.execute_item_batch.await_count == 1

    @pytest.mark.asyncio
    async def test_creates_missing_counter_then_retries(self, ledger, container):
        container.execute_item_batch.side_effect = [batch_error(1, 404), None]

        assert await ledger.try_reserve(42, "settings") is True

        container.create_item.assert_awaited_once_with(
            body={"id": COUNTER_ID, "tenant_id": "42", "type": "counter", "total": 0}
        )
        assert container.execute_item_batch.await_count == 2

    @pytest.mark.asyncio
    async def test_counter_created_concurrently(self, ledger, container):
        container.execute_item_batch.side_effect = [batch_error(1, 404), None]
        container.create_item.side_effect = CosmosResourceExistsError(
            status_code=409, message="Conflict"
        )

        assert await ledger.try_reserve(42, "settings") is True

    @pytest.mark.asyncio
    async def test_gives_up_when_counter_never_appears(self, ledger, container):
        container.execute_item_batch.side_effect = batch_error(1, 404)

        with pytest.raises(StorageIOError) as exc_info:
            await ledger.try_reserve(42, "settings")

        assert exc_info.value.operation == "reserve_session_key"
        assert container.execute_item_batch.await_count == ledger.config.max_attempts

    @pytest.mark.asyncio
    async def test_throttled_batch_is_not_retried(self, ledger, container):
        container.execute_item_batch.side_effect = batch_error(0, 429)

        with pytest.raises(StorageIOError):
            await ledger.try_reserve(42, "settings")
        assert container.execute_item_batch.await_count == 1

    @pytest.mark.asyncio
    async def test_transient_failure_is_not_retried(self, ledger, container):
        container.execute_item_batch.side_effect = CosmosHttpResponseError(
            status_code=503, message="Service unavailable"
        )

        with pytest.raises(StorageIOError):
            await ledger.try_reserve(42, "settings")
        assert container.execute_item_batch.await_count == 1

    @pytest.mark.asyncio
    async def test_counter_create_failure_is_wrapped(self, ledger, container):
        container.execute_item_batch.side_effect = batch_error(1, 404)
        container.create_item.side_effect = CosmosHttpResponseError(
            status_code=500, message="Internal error"
        )

        with pytest.raises(StorageIOError) as exc_info:
            await ledger.try_reserve(42, "settings")
        assert exc_info.value.operation == "create_ledger_counter"


class TestRelease:
    @pytest.mark.asyncio
    async def test_deletes_key_and_decrements(self, ledger, container):
        await ledger.release(42, "settings")

        kwargs = container.execute_item_batch.call_args.kwargs
        assert kwargs["partition_key"] == "42"
        assert kwargs["batch_operations"] == [
            ("delete", (key_item_id("settings"),)),
            ("patch", (COUNTER_ID, [{"op": "incr", "path": "/total", "value": -1}])),
        ]

    @pytest.mark.asyncio
    async def test_absent_key_is_noop(self, ledger, container):
        container.execute_item_batch.side_effect = batch_error(0, 404)

        await ledger.release(42, "settings")
        assert container.execute_item_batch.await_count == 1

    @pytest.mark.asyncio
    async def test_counter_failure_is_wrapped(self, ledger, container):
        container.execute_item_batch.side_effect = batch_error(1, 404)

        with pytest.raises(StorageIOError) as exc_info:
            await ledger.release(42, "settings")
        assert exc_info.value.operation == "release_session_key"

    @pytest.mark.asyncio
    async def test_transient_failure_is_wrapped(self, ledger, container):
        container.execute_item_batch.side_effect = CosmosHttpResponseError(
            status_code=503, message="down"
        )

        with pytest.raises(StorageIOError):
            await ledger.release(42, "settings")


class TestListKeys:
    @pytest.mark.asyncio
    async def test_partition_query(self, ledger, container):
        container.query_items = MagicMock(
            return_value=query_results({"key": "a"}, {"key": "chat/1"})
        )

        assert await ledger.list_keys(42) == {"a", "chat/1"}

        kwargs = container.query_items.call_args.kwargs
        assert kwargs["partition_key"] == "42"
        assert kwargs["parameters"] == [{"name": "@type", "value": "session_key"}]
        assert "c.type = @type" in kwargs["query"]

    @pytest.mark.asyncio
    async def test_empty_partition(self, ledger, container):
        container.query_items = MagicMock(return_value=query_results())
        assert await ledger.list_keys(42) == set()

    @pytest.mark.asyncio
    async def test_query_failure_is_wrapped(self, ledger, container):
        async def failing():
            raise CosmosHttpResponseError(status_code=503, message="down")
            yield  # pragma: no cover

        container.query_items = MagicMock(return_value=failing())

        with pytest.raises(StorageIOError):
            await ledger.list_keys(42)


class TestLifecycle:
    @pytest.fixture
    def cosmos_client(self):
        container = AsyncMock()
        database = AsyncMock()
        database.create_container_if_not_exists.return_value = container
        client = MagicMock()
        client.create_database_if_not_exists = AsyncMock(return_value=database)
        client.close = AsyncMock()
        with patch(
            "bot_session_storage.ledger.cosmos.CosmosClient", return_value=client
        ) as client_cls:
            yield client_cls, client

    @pytest.mark.asyncio
    async def test_use_before_initialize(self):
        ledger = CosmosLedger(CosmosLedgerConfig(endpoint="https://x.documents.azure.com"))
        with pytest.raises(StoreNotInitializedError):
            await ledger.list_keys(1)

    @pytest.mark.asyncio
    async def test_client_retries_disabled(self, cosmos_client):
        """Transport and throttling retries are both switched off."""
        client_cls, client = cosmos_client
        config = CosmosLedgerConfig(
            endpoint="https://acct.documents.azure.com", auth_method="key", key="secret"
        )

        async with CosmosLedger(config):
            pass

        args, kwargs = client_cls.call_args
        assert args == ("https://acct.documents.azure.com",)
        assert kwargs["credential"] == "secret"
        assert kwargs["retry_total"] == 0
        assert kwargs["retry_connect"] == 0
        assert kwargs["retry_read"] == 0
        assert kwargs["retry_status"] == 0
        assert kwargs["connection_policy"].RetryOptions.MaxRetryAttemptCount == 0
        assert kwargs["connection_policy"].RetryOptions.MaxWaitTimeInSeconds == 0
        client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rejected_credentials(self, cosmos_client):
        _, client = cosmos_client
        client.create_database_if_not_exists.side_effect = CosmosHttpResponseError(
            status_code=401, message="Unauthorized"
        )
        config = CosmosLedgerConfig(
            endpoint="https://acct.documents.azure.com", auth_method="key", key="bad"
        )

        with pytest.raises(AuthenticationError):
            await CosmosLedger(config).initialize()

    @pytest.mark.asyncio
    async def test_unreachable_account(self, cosmos_client):
        _, client = cosmos_client
        client.create_database_if_not_exists.side_effect = CosmosHttpResponseError(
            status_code=503, message="Service unavailable"
        )
        config = CosmosLedgerConfig(
            endpoint="https://acct.documents.azure.com", auth_method="key", key="secret"
        )

        with pytest.raises(StorageConnectionError):
            await CosmosLedger(config).initialize()


class TestCosmosLedgerConfig:
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("BOT_SESSIONS_COSMOS_ENDPOINT", "https://acct.documents.azure.com")
        monkeypatch.setenv("BOT_SESSIONS_COSMOS_AUTH_METHOD", "key")
        monkeypatch.setenv("BOT_SESSIONS_COSMOS_KEY", "secret")
        monkeypatch.delenv("BOT_SESSIONS_COSMOS_DATABASE", raising=False)
        monkeypatch.delenv("BOT_SESSIONS_COSMOS_CONTAINER", raising=False)

        config = CosmosLedgerConfig.from_env()

        assert config.endpoint == "https://acct.documents.azure.com"
        assert config.database_name == "bot-sessions"
        assert config.container_name == "session_keys"
        assert config.key == "secret"

    def test_missing_endpoint(self, monkeypatch):
        monkeypatch.delenv("BOT_SESSIONS_COSMOS_ENDPOINT", raising=False)
        with pytest.raises(AuthenticationError):
            CosmosLedgerConfig.from_env()

    def test_key_auth_requires_key(self, monkeypatch):
        monkeypatch.setenv("BOT_SESSIONS_COSMOS_ENDPOINT", "https://acct.documents.azure.com")
        monkeypatch.setenv("BOT_SESSIONS_COSMOS_AUTH_METHOD", "key")
        monkeypatch.delenv("BOT_SESSIONS_COSMOS_KEY", raising=False)
        with pytest.raises(AuthenticationError):
            CosmosLedgerConfig.from_env()


@pytest.mark.skipif(
    not os.environ.get("BOT_SESSIONS_COSMOS_ENDPOINT"),
    reason="BOT_SESSIONS_COSMOS_ENDPOINT not set",
)
class TestCosmosLedgerLive:
    """Contract tests against a real Cosmos DB account."""

    @pytest.fixture
    async def live_ledger(self):
        async with CosmosLedger(CosmosLedgerConfig.from_env(), max_session_count=3) as ledger:
            yield ledger

    @pytest.fixture
    def tenant_id(self) -> int:
        return uuid.uuid4().int % 10**12

    @pytest.mark.asyncio
    async def test_reserve_release_cycle(self, live_ledger, tenant_id):
        assert await live_ledger.try_reserve(tenant_id, "a") is True
        assert await live_ledger.try_reserve(tenant_id, "a") is True
        assert await live_ledger.list_keys(tenant_id) == {"a"}

        await live_ledger.release(tenant_id, "a")
        await live_ledger.release(tenant_id, "a")
        assert await live_ledger.list_keys(tenant_id) == set()

    @pytest.mark.asyncio
    async def test_concurrent_writers_never_overshoot(self, live_ledger, tenant_id):
        results = await asyncio.gather(
            *(live_ledger.try_reserve(tenant_id, f"k{i}") for i in range(10))
        )
        assert results.count(True) == 3
        assert len(await live_ledger.list_keys(tenant_id)) == 3
