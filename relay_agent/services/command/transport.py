"""
Command Transport

Fetches the pending command for this device from the command endpoint.

Wire format:
    GET <endpoint>?deviceId=<id>
    204               -> nothing pending
    2xx JSON object   -> {"hasCommand": bool, "command": str (when hasCommand)}
    anything else     -> TransportError
"""

import json

import httpx

from relay_agent.common.exceptions import TransportError
from relay_agent.common.logging_setup import get_service_logger

from .models import NO_COMMAND, CommandEnvelope, parse_command_name

logger = get_service_logger("command.transport")


class CommandTransport:
    """HTTP client for the command endpoint"""

    def __init__(
        self,
        endpoint: str,
        timeout_s: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.endpoint = endpoint
        self.timeout_s = timeout_s

        # Only close the client if we created it
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout_s,
            follow_redirects=True,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch_pending_command(self, device_id: str) -> CommandEnvelope:
        """
        Fetch the pending command for a device.

        Args:
            device_id: Non-empty device identity

        Returns:
            NoCommand, PendingCommand or UnknownCommand

        Raises:
            TransportError: Network failure, unexpected status, or malformed body
        """
        if not device_id:
            raise TransportError("device id must not be empty")

        logger.debug(f"Fetching commands from {self.endpoint}", extra={"device_id": device_id})

        try:
            response = await self._client.get(
                self.endpoint,
                params={"deviceId": device_id},
                timeout=self.timeout_s,
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"request timed out after {self.timeout_s}s: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"request failed: {e}") from e

        if response.status_code == httpx.codes.NO_CONTENT:
            return NO_COMMAND

        if not response.is_success:
            raise TransportError(
                f"unexpected status {response.status_code}",
                status_code=response.status_code,
            )

        return self._decode(response)

    def _decode(self, response: httpx.Response) -> CommandEnvelope:
        """Decode a success-range body into an envelope"""
        try:
            payload = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise TransportError(
                f"invalid JSON response: {e}", status_code=response.status_code
            ) from e

        if not isinstance(payload, dict):
            raise TransportError(
                f"expected a JSON object, got {type(payload).__name__}",
                status_code=response.status_code,
            )

        has_command = payload.get("hasCommand")
        if not isinstance(has_command, bool):
            raise TransportError(
                f"'hasCommand' must be a boolean, got {has_command!r}",
                status_code=response.status_code,
            )

        if not has_command:
            return NO_COMMAND

        command = payload.get("command")
        if not isinstance(command, str) or not command:
            raise TransportError(
                f"'command' must be a non-empty string, got {command!r}",
                status_code=response.status_code,
            )

        return parse_command_name(command)
