"""
Cosmos DB metadata ledger.

Each tenant is one logical partition of the ledger container (partition key
/tenant_id) holding one small item per reserved key plus a counter item:

    {"id": "count", "tenant_id": "42", "type": "counter", "total": 2}
    {"id": "key-<sha256>", "tenant_id": "42", "type": "session_key", "key": "settings"}
    {"id": "key-<sha256>", "tenant_id": "42", "type": "session_key", "key": "chat/100"}

No item grows with the number of keys, so a full quota never approaches the
item size limit. Key item ids are hashes because Cosmos ids may not contain
"/", "\\", "?" or "#".

Reservation is one transactional batch in the tenant's partition: create the
key item and increment the counter, the increment guarded by
``c.total < max_session_count``. Either both happen or neither does, so "is
there quota left?" and "take a slot" are a single server-side unit. Release is
the matching batch: delete the key item and decrement the counter.
"""

from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import dataclass
from typing import Any

from azure.cosmos import PartitionKey
from azure.cosmos._retry_options import RetryOptions
from azure.cosmos.aio import ContainerProxy, CosmosClient, DatabaseProxy
from azure.cosmos.documents import ConnectionPolicy
from azure.cosmos.exceptions import (
    CosmosBatchOperationError,
    CosmosHttpResponseError,
    CosmosResourceExistsError,
)
from azure.identity.aio import DefaultAzureCredential

from ..exceptions import (
    AuthenticationError,
    StorageConnectionError,
    StorageIOError,
    StoreNotInitializedError,
)
from ..limits import MAX_SESSION_COUNT
from .base import MetadataLedger

logger = logging.getLogger(__name__)

# Auth methods
AUTH_KEY = "key"
AUTH_DEFAULT_CREDENTIAL = "default_credential"

COUNTER_ID = "count"
KEY_ITEM_TYPE = "session_key"
COUNTER_ITEM_TYPE = "counter"

# Attempts at a reservation; the only repeat is after creating a missing counter
DEFAULT_MAX_ATTEMPTS = 3

# Batch operation outcomes
STATUS_NOT_FOUND = 404
STATUS_CONFLICT = 409
STATUS_PRECONDITION_FAILED = 412


@dataclass
class CosmosLedgerConfig:
    """Configuration for the Cosmos ledger.

    Attributes:
        endpoint: Cosmos DB account endpoint URL
        database_name: Name of the database
        container_name: Name of the ledger container
        auth_method: Authentication method ('key' or 'default_credential')
        key: Cosmos DB account key (only needed if auth_method='key')
        max_attempts: Bound on reservation attempts
    """

    endpoint: str
    database_name: str = "bot-sessions"
    container_name: str = "session_keys"
    auth_method: str = AUTH_DEFAULT_CREDENTIAL
    key: str | None = None
    max_attempts: int = DEFAULT_MAX_ATTEMPTS

    @classmethod
    def from_env(cls) -> CosmosLedgerConfig:
        """Create config from environment variables.

        Expected environment variables:
        - BOT_SESSIONS_COSMOS_ENDPOINT: Cosmos DB account endpoint
        - BOT_SESSIONS_COSMOS_DATABASE: Database name
        - BOT_SESSIONS_COSMOS_CONTAINER: Ledger container name
        - BOT_SESSIONS_COSMOS_AUTH_METHOD: 'key' or 'default_credential' (default)
        - BOT_SESSIONS_COSMOS_KEY: Account key (only if auth_method='key')
        """
        endpoint = os.environ.get("BOT_SESSIONS_COSMOS_ENDPOINT")
        auth_method = os.environ.get("BOT_SESSIONS_COSMOS_AUTH_METHOD", AUTH_DEFAULT_CREDENTIAL)
        key = os.environ.get("BOT_SESSIONS_COSMOS_KEY")

        if not endpoint:
            raise AuthenticationError(
                "cosmos", "BOT_SESSIONS_COSMOS_ENDPOINT environment variable not set"
            )

        if auth_method == AUTH_KEY and not key:
            raise AuthenticationError(
                "cosmos", "BOT_SESSIONS_COSMOS_KEY required when auth_method='key'"
            )

        return cls(
            endpoint=endpoint,
            database_name=os.environ.get("BOT_SESSIONS_COSMOS_DATABASE", "bot-sessions"),
            container_name=os.environ.get("BOT_SESSIONS_COSMOS_CONTAINER", "session_keys"),
            auth_method=auth_method,
            key=key,
        )


def client_options() -> dict[str, Any]:
    """CosmosClient keyword arguments that switch off SDK-internal retries.

    Covers both the transport retries (connection, read, status) and the
    throttling (429) retries, so a failure surfaces on the first attempt.
    """
    policy = ConnectionPolicy()
    policy.RetryOptions = RetryOptions(
        max_retry_attempt_count=0,
        fixed_retry_interval_in_milliseconds=0,
        max_wait_time_in_seconds=0,
    )
    return {
        "connection_policy": policy,
        "retry_total": 0,
        "retry_connect": 0,
        "retry_read": 0,
        "retry_status": 0,
    }


def key_item_id(key: str) -> str:
    """Cosmos item id for a session key."""
    return "key-" + hashlib.sha256(key.encode("utf-8")).hexdigest()


def _batch_failure(error: CosmosBatchOperationError) -> tuple[int | None, int | None]:
    """Return (index, status) of the operation that failed a batch."""
    index = error.error_index
    status = error.status_code
    responses = error.operation_responses or []
    if index is not None and 0 <= index < len(responses):
        status = responses[index].get("statusCode", status)
    return index, status


class CosmosLedger(MetadataLedger):
    """Metadata ledger stored in Azure Cosmos DB.

    Container partition key: /tenant_id
    """

    def __init__(self, config: CosmosLedgerConfig, max_session_count: int = MAX_SESSION_COUNT):
        """Initialize the Cosmos ledger.

        Args:
            config: Cosmos configuration
            max_session_count: Largest number of keys a tenant may hold
        """
        super().__init__(max_session_count)
        self.config = config
        self._client: CosmosClient | None = None
        self._credential: DefaultAzureCredential | None = None
        self._database: DatabaseProxy | None = None
        self._container: ContainerProxy | None = None

    async def initialize(self) -> None:
        """Initialize connection and ensure the ledger container exists."""
        if self._container is not None:
            return

        try:
            if self.config.auth_method == AUTH_KEY:
                credential: Any = self.config.key
            else:
                # Use DefaultAzureCredential for managed identity, etc.
                self._credential = DefaultAzureCredential()
                credential = self._credential
            self._client = CosmosClient(
                self.config.endpoint, credential=credential, **client_options()
            )

            self._database = await self._client.create_database_if_not_exists(
                id=self.config.database_name
            )
            self._container = await self._database.create_container_if_not_exists(
                id=self.config.container_name,
                partition_key=PartitionKey(path="/tenant_id"),
            )
            logger.info(f"Cosmos ledger initialized: {self.config.endpoint}")

        except CosmosHttpResponseError as e:
            await self.close()
            if e.status_code in (401, 403):
                raise AuthenticationError(self.config.endpoint, str(e)) from e
            raise StorageConnectionError(self.config.endpoint, e) from e
        except Exception as e:
            await self.close()
            raise StorageConnectionError(self.config.endpoint, e) from e

    async def close(self) -> None:
        """Close the connection."""
        if self._client:
            await self._client.close()
            self._client = None

        if self._credential:
            await self._credential.close()
            self._credential = None

        self._database = None
        self._container = None

    def _get_container(self) -> ContainerProxy:
        if self._container is None:
            raise StoreNotInitializedError("CosmosLedger")
        return self._container

    async def _create_counter(self, container: ContainerProxy, tenant: str) -> None:
        """Create the tenant's counter at zero; a concurrent creator is fine."""
        doc = {"id": COUNTER_ID, "tenant_id": tenant, "type": COUNTER_ITEM_TYPE, "total": 0}
        try:
            await container.create_item(body=doc)
        except CosmosResourceExistsError:
            pass
        except CosmosHttpResponseError as e:
            raise StorageIOError("create_ledger_counter", tenant, e) from e

    async def try_reserve(self, tenant_id: int, key: str) -> bool:
        container = self._get_container()
        tenant = str(tenant_id)
        batch = [
            (
                "create",
                ({"id": key_item_id(key), "tenant_id": tenant, "type": KEY_ITEM_TYPE, "key": key},),
            ),
            (
                "patch",
                (COUNTER_ID, [{"op": "incr", "path": "/total", "value": 1}]),
                {"filter_predicate": f"FROM c WHERE c.total < {self.max_session_count}"},
            ),
        ]

        for _ in range(self.config.max_attempts):
            try:
                await container.execute_item_batch(batch_operations=batch, partition_key=tenant)
                return True
            except CosmosBatchOperationError as e:
                index, status = _batch_failure(e)
                if index == 0 and status == STATUS_CONFLICT:
                    return True
                if index == 1 and status == STATUS_PRECONDITION_FAILED:
                    return False
                if index == 1 and status == STATUS_NOT_FOUND:
                    await self._create_counter(container, tenant)
                    continue
                raise StorageIOError("reserve_session_key", tenant, e) from e
            except CosmosHttpResponseError as e:
                raise StorageIOError("reserve_session_key", tenant, e) from e

        logger.warning(f"Reservation for tenant {tenant} gave up without a counter")
        raise StorageIOError(
            "reserve_session_key", tenant, RuntimeError("Ledger counter unavailable")
        )

    async def release(self, tenant_id: int, key: str) -> None:
        container = self._get_container()
        tenant = str(tenant_id)
        batch = [
            ("delete", (key_item_id(key),)),
            ("patch", (COUNTER_ID, [{"op": "incr", "path": "/total", "value": -1}])),
        ]

        try:
            await container.execute_item_batch(batch_operations=batch, partition_key=tenant)
        except CosmosBatchOperationError as e:
            index, status = _batch_failure(e)
            if index == 0 and status == STATUS_NOT_FOUND:
                return
            raise StorageIOError("release_session_key", tenant, e) from e
        except CosmosHttpResponseError as e:
            raise StorageIOError("release_session_key", tenant, e) from e

    async def list_keys(self, tenant_id: int) -> set[str]:
        container = self._get_container()
        tenant = str(tenant_id)
        keys: set[str] = set()
        try:
            async for doc in container.query_items(
                query="SELECT c.key FROM c WHERE c.type = @type",
                parameters=[{"name": "@type", "value": KEY_ITEM_TYPE}],
                partition_key=tenant,
            ):
                keys.add(doc["key"])
        except CosmosHttpResponseError as e:
            raise StorageIOError("list_session_keys", tenant, e) from e
        return keys
