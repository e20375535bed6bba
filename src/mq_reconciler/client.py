"""Amazon MQ control-plane client."""

import logging
from typing import Any

import aioboto3
from botocore.exceptions import (
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from .exceptions import (
    RemoteConflictError,
    RemoteError,
    RemoteForbiddenError,
    RemoteNotFoundError,
    RemoteTransientError,
    RemoteUnknownError,
    RemoteValidationError,
)
from .mapping import create_broker_request, live_state_from_response, user_from_response
from .models import BrokerSpec, LiveState, UserSpec

logger = logging.getLogger(__name__)

_ERROR_CLASSES: dict[str, type[RemoteError]] = {
    "NotFoundException": RemoteNotFoundError,
    "ForbiddenException": RemoteForbiddenError,
    "AccessDeniedException": RemoteForbiddenError,
    "ConflictException": RemoteConflictError,
    "BadRequestException": RemoteValidationError,
    "InternalServerErrorException": RemoteTransientError,
    "ThrottlingException": RemoteTransientError,
    "TooManyRequestsException": RemoteTransientError,
    "ServiceUnavailableException": RemoteTransientError,
}


def classify_client_error(operation: str, error: Exception) -> RemoteError:
    """Map a botocore exception onto the remote error taxonomy."""
    if isinstance(error, ClientError):
        code = error.response.get("Error", {}).get("Code", "")
        message = error.response.get("Error", {}).get("Message", str(error))
        error_class = _ERROR_CLASSES.get(code, RemoteUnknownError)
        return error_class(operation, message, code=code or None, cause=error)
    if isinstance(error, EndpointConnectionError | ConnectTimeoutError | ReadTimeoutError):
        return RemoteTransientError(operation, str(error), cause=error)
    return RemoteUnknownError(operation, str(error), cause=error)


class MqClient:
    """
    Issues Amazon MQ API calls for brokers and their users.

    Supports both AWS and LocalStack environments. When endpoint_url is
    provided, API calls are sent to that endpoint. Every botocore failure
    is re-raised as a :class:`~mq_reconciler.exceptions.RemoteError`
    subclass.
    """

    def __init__(
        self,
        region: str | None = None,
        endpoint_url: str | None = None,
    ) -> None:
        """
        Initialize client.

        Args:
            region: AWS region (default: use boto3 defaults)
            endpoint_url: Optional endpoint URL (for LocalStack or other compatible services)
        """
        self.region = region
        self.endpoint_url = endpoint_url
        self._session: aioboto3.Session | None = None
        self._client: Any = None

    async def _get_client(self) -> Any:
        """Get or create the MQ client."""
        if self._client is not None:
            return self._client

        if self._session is None:
            self._session = aioboto3.Session()

        kwargs: dict[str, Any] = {}
        if self.region:
            kwargs["region_name"] = self.region
        if self.endpoint_url:
            kwargs["endpoint_url"] = self.endpoint_url

        session = self._session
        self._client = await session.client("mq", **kwargs).__aenter__()
        return self._client

    async def _call(self, operation: str, method: str, **params: Any) -> dict[str, Any]:
        client = await self._get_client()
        try:
            response: dict[str, Any] = await getattr(client, method)(**params)
        except (ClientError, EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError) as e:
            raise classify_client_error(operation, e) from e
        return response

    # -----------------------------------------------------------------------
    # Brokers
    # -----------------------------------------------------------------------

    async def create_broker(
        self, spec: BrokerSpec, replaces: str | None = None
    ) -> tuple[str, str]:
        """
        Create a broker.

        Args:
            spec: Declared configuration
            replaces: Id of the broker this one replaces, if any

        Returns:
            Tuple of (broker_id, broker_arn)
        """
        response = await self._call(
            "CreateBroker", "create_broker", **create_broker_request(spec, replaces)
        )
        return response["BrokerId"], response.get("BrokerArn", "")

    async def describe_broker(self, broker_id: str) -> LiveState:
        """
        Describe a broker.

        The returned state carries user summaries only; its ``spec.users``
        is empty.

        Raises:
            RemoteNotFoundError: If the broker does not exist
        """
        response = await self._call("DescribeBroker", "describe_broker", BrokerId=broker_id)
        return live_state_from_response(response)

    async def update_broker(self, broker_id: str, **fields: Any) -> None:
        """Issue one UpdateBroker call with the given (PascalCase) fields."""
        await self._call("UpdateBroker", "update_broker", BrokerId=broker_id, **fields)

    async def reboot_broker(self, broker_id: str) -> None:
        await self._call("RebootBroker", "reboot_broker", BrokerId=broker_id)

    async def delete_broker(self, broker_id: str) -> None:
        await self._call("DeleteBroker", "delete_broker", BrokerId=broker_id)

    # -----------------------------------------------------------------------
    # Users
    # -----------------------------------------------------------------------

    async def create_user(self, broker_id: str, params: dict[str, Any]) -> None:
        await self._call("CreateUser", "create_user", BrokerId=broker_id, **params)

    async def update_user(self, broker_id: str, params: dict[str, Any]) -> None:
        await self._call("UpdateUser", "update_user", BrokerId=broker_id, **params)

    async def delete_user(self, broker_id: str, username: str) -> None:
        await self._call("DeleteUser", "delete_user", BrokerId=broker_id, Username=username)

    async def describe_user(self, broker_id: str, username: str) -> UserSpec:
        """Describe one user. The password is never returned."""
        response = await self._call(
            "DescribeUser", "describe_user", BrokerId=broker_id, Username=username
        )
        return user_from_response(response)

    # -----------------------------------------------------------------------
    # Tags
    # -----------------------------------------------------------------------

    async def create_tags(self, arn: str, tags: dict[str, str]) -> None:
        await self._call("CreateTags", "create_tags", ResourceArn=arn, Tags=tags)

    async def delete_tags(self, arn: str, keys: list[str]) -> None:
        await self._call("DeleteTags", "delete_tags", ResourceArn=arn, TagKeys=keys)

    async def close(self) -> None:
        """Close the underlying session and client."""
        if self._client is not None:
            try:
                await self._client.__aexit__(None, None, None)
            finally:
                self._client = None
        self._session = None

    async def __aenter__(self) -> "MqClient":
        """Enter async context manager."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Exit async context manager."""
        await self.close()
