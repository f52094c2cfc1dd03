import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import structlog
import tenacity
from azure.core.exceptions import (
    ClientAuthenticationError,
    ServiceRequestError,
    ServiceResponseError,
)
from azure.identity.aio import ClientSecretCredential, ManagedIdentityCredential
from azure.mgmt.monitor.aio import MonitorManagementClient
from azure.mgmt.resource.resources.aio import ResourceManagementClient
from azure.mgmt.resource.resources.models import Tags, TagsPatchResource
from azure.mgmt.resource.subscriptions.aio import SubscriptionClient

from azhistory.modules.provenance.domain.models import AuditEvent, Resource
from azhistory.modules.provenance.domain.ports import AUDIT_EVENT_FIELDS
from azhistory.shared.core.credentials import AzureCredentials
from azhistory.shared.core.exceptions import (
    AuditQueryError,
    AuthenticationError,
    AzureHistoryError,
    ConfigurationError,
    InventoryListError,
    MetadataWriteConflictError,
    MetadataWriteError,
)

logger = structlog.get_logger()

# Retry decorator for Azure transient transport failures
azure_retry = tenacity.retry(
    retry=tenacity.retry_if_exception_type((ServiceRequestError, ServiceResponseError)),
    wait=tenacity.wait_exponential(multiplier=1, min=2, max=10),
    stop=tenacity.stop_after_attempt(3),
    before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
    reraise=True,
)


def tag_fingerprint(tags: Optional[Dict[str, str]]) -> str:
    """Stable version token for a tag mapping; None and {} are the same state."""
    payload = json.dumps(tags or {}, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _odata_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def build_activity_log_filter(resource_id: str, start: datetime, end: datetime) -> str:
    return (
        f"eventTimestamp ge '{_odata_timestamp(start)}' and "
        f"eventTimestamp le '{_odata_timestamp(end)}' and "
        f"resourceUri eq '{resource_id}'"
    )


def build_credential(credentials: AzureCredentials) -> Any:
    """Async azure-identity credential for a run. The engine never touches it."""
    if credentials.uses_managed_identity:
        if credentials.client_id:
            return ManagedIdentityCredential(client_id=credentials.client_id)
        return ManagedIdentityCredential()
    if not credentials.client_secret or not credentials.tenant_id or not credentials.client_id:
        raise ConfigurationError(
            "Azure tenant_id, client_id and client_secret are required for client secret auth"
        )
    return ClientSecretCredential(
        tenant_id=credentials.tenant_id,
        client_id=credentials.client_id,
        client_secret=credentials.client_secret.get_secret_value(),
    )


class AzureAdapter:
    """
    Azure Resource Manager and Activity Log adapter using the official Azure SDK.

    Implements both the resource inventory and the audit event source the
    reconciliation engine consumes. One adapter serves one run; use it as an
    async context manager so clients and the credential get closed.
    """

    def __init__(self, credentials: AzureCredentials, credential: Any = None):
        self.credentials = credentials
        self._credential = credential
        self._resource_client: ResourceManagementClient | None = None
        self._monitor_client: MonitorManagementClient | None = None
        self._subscription_client: SubscriptionClient | None = None

    async def _get_credentials(self) -> Any:
        if not self._credential:
            self._credential = build_credential(self.credentials)
        return self._credential

    async def _get_resource_client(self) -> ResourceManagementClient:
        if not self._resource_client:
            creds = await self._get_credentials()
            self._resource_client = ResourceManagementClient(
                credential=creds, subscription_id=self.credentials.subscription_id
            )
        return self._resource_client

    async def _get_monitor_client(self) -> MonitorManagementClient:
        if not self._monitor_client:
            creds = await self._get_credentials()
            self._monitor_client = MonitorManagementClient(
                credential=creds, subscription_id=self.credentials.subscription_id
            )
        return self._monitor_client

    async def _get_subscription_client(self) -> SubscriptionClient:
        if not self._subscription_client:
            creds = await self._get_credentials()
            self._subscription_client = SubscriptionClient(credential=creds)
        return self._subscription_client

    async def verify_connection(self) -> str:
        """
        Verify the session by reading the subscription itself.

        Returns its display name. Raises AuthenticationError when the
        credential is rejected, so nothing is processed with a dead session.
        """
        try:
            client = await self._get_subscription_client()
            subscription = await client.subscriptions.get(self.credentials.subscription_id)
        except ClientAuthenticationError as e:
            logger.error("azure_verify_failed", error=str(e))
            raise AuthenticationError(f"Azure authentication failed: {e}") from e
        except AzureHistoryError:
            raise
        except Exception as e:
            logger.error("azure_verify_failed", error=str(e))
            raise AuthenticationError(
                f"Could not access subscription {self.credentials.subscription_id}: {e}"
            ) from e
        display_name = subscription.display_name or self.credentials.subscription_id
        logger.info(
            "azure_subscription_verified",
            subscription_id=self.credentials.subscription_id,
            display_name=display_name,
        )
        return display_name

    async def list_resources(self) -> AsyncIterator[Resource]:
        try:
            client = await self._get_resource_client()
            async for item in client.resources.list():
                yield self._to_resource(item)
        except ClientAuthenticationError as e:
            raise AuthenticationError(f"Azure authentication failed: {e}") from e
        except AzureHistoryError:
            raise
        except Exception as e:
            logger.error("azure_resource_list_failed", error=str(e))
            raise InventoryListError(f"Azure resource listing failed: {e}") from e

    @staticmethod
    def _to_resource(item: Any) -> Resource:
        tags = dict(item.tags) if item.tags is not None else None
        return Resource(
            id=item.id,
            type=item.type or "",
            name=item.name or "",
            tags=tags,
            kind=getattr(item, "kind", None),
            version=tag_fingerprint(tags),
        )

    async def query_events(
        self,
        resource_id: str,
        start: datetime,
        end: datetime,
        fields: Sequence[str] = AUDIT_EVENT_FIELDS,
    ) -> List[AuditEvent]:
        try:
            return await self._fetch_events(resource_id, start, end, fields)
        except ClientAuthenticationError as e:
            raise AuthenticationError(f"Azure authentication failed: {e}") from e
        except Exception as e:
            logger.error("azure_activity_log_query_failed", resource_id=resource_id, error=str(e))
            raise AuditQueryError(
                f"Activity log query failed for {resource_id}: {e}",
                details={"resource_id": resource_id},
            ) from e

    @azure_retry
    async def _fetch_events(
        self, resource_id: str, start: datetime, end: datetime, fields: Sequence[str]
    ) -> List[AuditEvent]:
        client = await self._get_monitor_client()
        events: List[AuditEvent] = []
        async for item in client.activity_logs.list(
            filter=build_activity_log_filter(resource_id, start, end),
            select=",".join(fields),
        ):
            events.append(self._to_event(item))
        return events

    @staticmethod
    def _to_event(item: Any) -> AuditEvent:
        operation = getattr(item, "operation_name", None)
        if operation is not None and hasattr(operation, "value"):
            operation = operation.value
        return AuditEvent(
            caller=item.caller,
            timestamp=item.event_timestamp,
            operation_name=operation or "",
        )

    async def update_resource_tags(
        self,
        resource_id: str,
        expected_version: Optional[str],
        new_tags: Dict[str, str],
    ) -> None:
        """
        Best-effort conditional tag write-back.

        Re-reads the tags at the resource scope and refuses to write if they
        changed since listing. Azure tags carry no ETag, so this is a
        read-then-merge: a change landing between the read and the patch is
        not detected. The write itself is a single Merge patch, so either all
        of ``new_tags`` land or none do, and keys outside ``new_tags`` are
        left untouched by the merge.
        """
        try:
            current = await self._get_current_tags(resource_id)
            if expected_version is not None and tag_fingerprint(current) != expected_version:
                raise MetadataWriteConflictError(
                    f"Tags on {resource_id} changed since they were listed",
                    details={"resource_id": resource_id},
                )
            client = await self._get_resource_client()
            poller = await client.tags.begin_update_at_scope(
                scope=resource_id,
                parameters=TagsPatchResource(
                    operation="Merge", properties=Tags(tags=new_tags)
                ),
            )
            await poller.result()
        except ClientAuthenticationError as e:
            raise AuthenticationError(f"Azure authentication failed: {e}") from e
        except AzureHistoryError:
            raise
        except Exception as e:
            raise MetadataWriteError(
                f"Tag update failed for {resource_id}: {e}",
                details={"resource_id": resource_id},
            ) from e

    @azure_retry
    async def _get_current_tags(self, resource_id: str) -> Optional[Dict[str, str]]:
        client = await self._get_resource_client()
        result = await client.tags.get_at_scope(scope=resource_id)
        properties = getattr(result, "properties", None)
        if properties is None or properties.tags is None:
            return None
        return dict(properties.tags)

    async def close(self) -> None:
        if self._resource_client:
            await self._resource_client.close()
        if self._monitor_client:
            await self._monitor_client.close()
        if self._subscription_client:
            await self._subscription_client.close()
        if self._credential:
            await self._credential.close()

    async def __aenter__(self) -> "AzureAdapter":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
