"""
Asterisk Manager Interface client over asyncio streams.

AMI is a line-oriented TCP protocol: every message is a block of
``Key: Value`` lines terminated by a blank line. Actions carry an ActionID
that Asterisk echoes on the response (and on the events of list actions
such as QueueStatus), which is how responses are matched to callers.
"""

import asyncio
import itertools
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from callpause.config.settings import Settings
from callpause.integrations.ami.exceptions import AMIActionError, AMIConnectionError
from callpause.utils.logger import get_module_logger

logger = get_module_logger(__name__)

# Separate logger for raw protocol traffic (DEBUG only)
ami_comm_logger = get_module_logger("ami.communications")

LINE_TERMINATOR = "\r\n"

# Message keys that never reach the protocol log
REDACTED_KEYS = frozenset({"Secret"})


@dataclass
class _PendingAction:
    future: asyncio.Future
    collect_events: bool
    response: Optional[Dict[str, Any]] = None
    events: List[Dict[str, Any]] = field(default_factory=list)


class AMIClient:
    """
    Minimal AMI client: login, single-response actions and event-list actions.

    Connects lazily on the first action and reconnects on the next action
    after the connection drops. Actions may be issued concurrently; replies
    are matched by ActionID.
    """

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        secret: str,
        connect_timeout: float = 5.0,
        action_timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.secret = secret
        self.connect_timeout = connect_timeout
        self.action_timeout = action_timeout

        self.banner: Optional[str] = None
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._read_task: Optional[asyncio.Task] = None
        self._pending: Dict[str, _PendingAction] = {}
        self._connect_lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()
        self._action_ids = itertools.count(1)
        self._connected = False
        self._closing = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        """
        Open the TCP connection and log in. No-op when already connected.

        Raises:
            AMIConnectionError: If the socket cannot be opened or login is rejected
        """
        async with self._connect_lock:
            if self._connected:
                return

            try:
                self._reader, self._writer = await asyncio.wait_for(
                    asyncio.open_connection(self.host, self.port),
                    timeout=self.connect_timeout,
                )
                banner = await asyncio.wait_for(self._reader.readline(), timeout=self.connect_timeout)
            except (OSError, asyncio.TimeoutError) as e:
                await self._close_transport()
                raise AMIConnectionError(
                    f"Cannot connect to AMI at {self.host}:{self.port}: {type(e).__name__}: {e}"
                ) from e

            self.banner = banner.decode("utf-8", errors="replace").strip()
            self._connected = True
            self._read_task = asyncio.create_task(self._read_loop())

            try:
                await self._send_and_wait(
                    {"Action": "Login", "Username": self.username, "Secret": self.secret, "Events": "off"},
                    collect_events=False,
                )
            except AMIActionError as e:
                await self._shutdown_connection()
                raise AMIConnectionError(
                    f"AMI login failed for user '{self.username}': {e}", action="Login", response=e.response
                ) from e
            except AMIConnectionError:
                await self._shutdown_connection()
                raise

            logger.info(f"Connected to AMI at {self.host}:{self.port} ({self.banner})")

    async def execute_action(self, action: Dict[str, str]) -> Dict[str, Any]:
        """
        Send one action and return its response message.

        Args:
            action: AMI headers, must include 'Action'

        Returns:
            Response headers (repeated keys such as 'Output' become lists)

        Raises:
            AMIConnectionError: If the connection cannot be established or drops
            AMIActionError: If Asterisk reports an error or the action times out
        """
        await self.connect()
        response, _ = await self._send_and_wait(action, collect_events=False)
        return response

    async def execute_list_action(self, action: Dict[str, str]) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
        """
        Send an event-list action (e.g. QueueStatus) and collect its events.

        Returns:
            Tuple of (response headers, list events excluding the completion event)
        """
        await self.connect()
        return await self._send_and_wait(action, collect_events=True)

    async def close(self) -> None:
        """Log off and close the connection."""
        self._closing = True
        if self._connected:
            try:
                await asyncio.wait_for(
                    self._send_and_wait({"Action": "Logoff"}, collect_events=False),
                    timeout=1.0,
                )
            except (AMIConnectionError, AMIActionError, asyncio.TimeoutError) as e:
                logger.debug(f"AMI logoff did not complete cleanly: {e}")
        await self._shutdown_connection()
        self._closing = False
        logger.info("AMI client closed")

    async def _send_and_wait(
        self, action: Dict[str, str], collect_events: bool
    ) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
        action_name = action.get("Action", "<unknown>")
        action_id = f"callpause-{next(self._action_ids)}"
        future = asyncio.get_running_loop().create_future()
        self._pending[action_id] = _PendingAction(future=future, collect_events=collect_events)

        try:
            await self._write_message({**action, "ActionID": action_id})
            response, events = await asyncio.wait_for(future, timeout=self.action_timeout)
        except asyncio.TimeoutError as e:
            raise AMIActionError(
                f"AMI action {action_name} timed out after {self.action_timeout}s", action=action_name
            ) from e
        finally:
            self._pending.pop(action_id, None)

        if str(response.get("Response", "")).lower() == "error":
            raise AMIActionError(
                response.get("Message", f"AMI action {action_name} failed"),
                action=action_name,
                response=response,
            )
        return response, events

    async def _write_message(self, message: Dict[str, str]) -> None:
        if not self._connected or self._writer is None:
            raise AMIConnectionError("AMI connection is not open", action=message.get("Action"))

        payload = "".join(f"{key}: {value}{LINE_TERMINATOR}" for key, value in message.items())
        payload += LINE_TERMINATOR

        ami_comm_logger.debug(
            "AMI >> %s",
            {k: ("***" if k in REDACTED_KEYS else v) for k, v in message.items()},
        )

        async with self._write_lock:
            try:
                self._writer.write(payload.encode("utf-8"))
                await self._writer.drain()
            except (ConnectionError, OSError) as e:
                self._handle_disconnect(f"write failed: {e}")
                raise AMIConnectionError(f"AMI write failed: {e}", action=message.get("Action")) from e

    async def _read_loop(self) -> None:
        reason = "connection closed by peer"
        try:
            while True:
                message = await self._read_message()
                if message is None:
                    break
                ami_comm_logger.debug("AMI << %s", message)
                self._dispatch(message)
        except asyncio.CancelledError:
            reason = "client closed"
            raise
        except (ConnectionError, OSError) as e:
            reason = f"read failed: {e}"
            logger.warning(f"AMI read loop terminated: {e}")
        finally:
            self._handle_disconnect(reason)

    async def _read_message(self) -> Optional[Dict[str, Any]]:
        """Read one blank-line-terminated message; None at end of stream."""
        message: Dict[str, Any] = {}
        while True:
            raw = await self._reader.readline()
            if not raw:
                return None

            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            if not line:
                if message:
                    return message
                continue

            key, separator, value = line.partition(":")
            if separator:
                key, value = key.strip(), value.strip()
            else:
                # Legacy "Response: Follows" command bodies are bare lines
                key, value = "Output", line

            if key in message:
                existing = message[key]
                if isinstance(existing, list):
                    existing.append(value)
                else:
                    message[key] = [existing, value]
            else:
                message[key] = value

    def _dispatch(self, message: Dict[str, Any]) -> None:
        action_id = message.get("ActionID")
        pending = self._pending.get(action_id) if isinstance(action_id, str) else None
        if pending is None:
            return

        event_list = str(message.get("EventList", "")).lower()

        if "Response" in message:
            pending.response = message
            if pending.collect_events and event_list == "start" and message["Response"].lower() == "success":
                return
            self._resolve(action_id, pending)
        elif "Event" in message and pending.collect_events:
            if event_list == "complete" or str(message["Event"]).endswith("Complete"):
                self._resolve(action_id, pending)
            else:
                pending.events.append(message)

    def _resolve(self, action_id: str, pending: _PendingAction) -> None:
        self._pending.pop(action_id, None)
        if not pending.future.done():
            pending.future.set_result((pending.response or {}, pending.events))

    def _handle_disconnect(self, reason: str) -> None:
        was_connected = self._connected
        self._connected = False

        pending, self._pending = self._pending, {}
        for action_id, entry in pending.items():
            if not entry.future.done():
                entry.future.set_exception(AMIConnectionError(f"AMI connection lost: {reason}"))

        if self._writer is not None:
            self._writer.close()
            self._writer = None
        self._reader = None

        if was_connected and not self._closing:
            logger.warning(f"AMI connection to {self.host}:{self.port} lost: {reason}")

    async def _shutdown_connection(self) -> None:
        task, self._read_task = self._read_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._handle_disconnect("client closed")
        await self._close_transport()

    async def _close_transport(self) -> None:
        writer, self._writer = self._writer, None
        self._reader = None
        if writer is not None:
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionError, OSError):
                pass


def create_ami_client(settings: Settings) -> Optional[AMIClient]:
    """Build the AMI client from settings, or None when AMI is disabled."""
    if not settings.ami_enabled:
        logger.info("AMI disabled - pause changes are written to the realtime tables only")
        return None

    return AMIClient(
        host=settings.ami_host,
        port=settings.ami_port,
        username=settings.ami_username,
        secret=settings.ami_secret,
        connect_timeout=settings.ami_connect_timeout,
        action_timeout=settings.ami_action_timeout,
    )
