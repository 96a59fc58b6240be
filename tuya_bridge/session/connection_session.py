"""
Connection session for one directly connected device.

Owns the link lifecycle: find/connect, disconnect, the heartbeat monitor
and the reconnect loop. Data arriving from the transport is handed to the
owner through the `on_data` callback; the session itself keeps no device
state beyond liveness bookkeeping.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, Tuple

from tuya_bridge.core.exceptions import CircuitOpenError, DeviceConnectionError
from tuya_bridge.core.patterns.circuit_breaker import BreakerConfig, CircuitBreaker
from tuya_bridge.core.patterns.state_machine import LinkState, StateMachine
from tuya_bridge.models import DeviceIdentity
from tuya_bridge.protocols.ports import DeviceTransport


@dataclass(frozen=True)
class SessionTiming:
    """Liveness and recovery tunables (seconds unless noted)."""
    heartbeat_interval: float = 10.0
    heartbeat_max_missed: int = 3
    reconnect_delays: Tuple[float, ...] = (10.0, 60.0)
    reconnect_max_attempts: int = 0          # 0 = retry forever
    breaker_threshold: int = 10
    breaker_cooldown: float = 300.0
    connect_timeout: float = 5.0
    disconnect_grace: float = 5.0
    poll_interval: float = 10.0

    @classmethod
    def from_settings(cls, settings) -> "SessionTiming":
        return cls(
            heartbeat_interval=settings.HEARTBEAT_INTERVAL,
            heartbeat_max_missed=settings.HEARTBEAT_MAX_MISSED,
            reconnect_delays=tuple(settings.RECONNECT_DELAYS),
            reconnect_max_attempts=settings.RECONNECT_MAX_ATTEMPTS,
            breaker_threshold=settings.RECONNECT_BREAKER_THRESHOLD,
            breaker_cooldown=settings.RECONNECT_BREAKER_COOLDOWN,
            connect_timeout=settings.CONNECT_TIMEOUT,
            disconnect_grace=settings.DISCONNECT_GRACE,
            poll_interval=settings.SUBDEVICE_POLL_INTERVAL,
        )


class ReconnectBackoff:
    """First retry waits delays[0], every later one the last entry of the table."""

    def __init__(self, delays: Sequence[float] = (10.0, 60.0)):
        if not delays:
            raise ValueError("reconnect backoff needs at least one delay")
        self.delays = tuple(delays)

    def delay(self, attempt: int) -> float:
        return self.delays[min(attempt, len(self.delays) - 1)]


class ConnectionSession:
    """
    Live link to one device.

    Callbacks (all coroutines, all optional):
      on_connected()        link is up
      on_disconnected()     link was lost (heartbeat timeout, transport
                            drop or error); not fired for `disconnect()`
      on_data(payload)      `{"dps": {...}, "cid": ...}` from the device
    """

    def __init__(self, identity: DeviceIdentity, transport: DeviceTransport,
                 timing: Optional[SessionTiming] = None):
        self.identity = identity
        self.transport = transport
        self.timing = timing or SessionTiming()
        self.backoff = ReconnectBackoff(self.timing.reconnect_delays)
        self.breaker = CircuitBreaker(
            BreakerConfig(failure_threshold=self.timing.breaker_threshold,
                          timeout=self.timing.breaker_cooldown),
            name=f"CircuitBreaker[{identity.device_id}]",
        )
        self.logger = logging.getLogger(f"{self.__class__.__name__}[{identity.device_id}]")

        self.heartbeats_missed = 0
        self.reconnecting = False
        self._machine = StateMachine()
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._closed = False

        self.on_connected: Optional[Callable[[], Awaitable[None]]] = None
        self.on_disconnected: Optional[Callable[[], Awaitable[None]]] = None
        self.on_data: Optional[Callable[[Dict[str, Any]], Awaitable[None]]] = None

        transport.set_handlers(
            on_data=self._handle_data,
            on_heartbeat=self._handle_heartbeat,
            on_disconnected=self._handle_transport_disconnected,
            on_error=self._handle_error,
        )

    def set_callbacks(self, on_connected=None, on_disconnected=None, on_data=None) -> None:
        self.on_connected = on_connected
        self.on_disconnected = on_disconnected
        self.on_data = on_data

    # ------------------------------------------------------------ lifecycle

    @property
    def state(self) -> LinkState:
        return self._machine.state

    @property
    def connected(self) -> bool:
        return self._machine.state == LinkState.CONNECTED

    async def connect(self) -> None:
        """
        Find (when the address is unknown) and connect.

        Raises DeviceConnectionError on timeout or handshake failure; the
        caller decides whether to enter the reconnect loop.
        """
        if self.connected:
            return
        if not self._machine.transition(LinkState.CONNECTING):
            raise DeviceConnectionError(f"{self.identity}: cannot connect from state {self.state.name}")

        timeout = self.timing.connect_timeout
        try:
            if not self.transport.address:
                self.logger.info(f"Searching for device id {self.identity.device_id}")
                address = await asyncio.wait_for(self.transport.find(), timeout)
                self.logger.info(f"Found device id {self.identity.device_id} at {address}")
            await asyncio.wait_for(self.transport.connect(), timeout)
        except asyncio.TimeoutError as e:
            self._machine.transition(LinkState.DISCONNECTED)
            raise DeviceConnectionError(f"{self.identity}: timed out after {timeout:.0f}s") from e
        except DeviceConnectionError:
            self._machine.transition(LinkState.DISCONNECTED)
            raise
        except OSError as e:
            self._machine.transition(LinkState.DISCONNECTED)
            raise DeviceConnectionError(f"{self.identity}: {e}") from e

        self._machine.transition(LinkState.CONNECTED)
        self.heartbeats_missed = 0
        self.logger.info(f"Connected to device {self.identity}")
        self._start_heartbeat()
        await self._safe_callback(self.on_connected)

    async def disconnect(self) -> None:
        """Stop the heartbeat and close the link; no-op when already down."""
        self._stop_heartbeat()
        if self.state not in (LinkState.CONNECTED, LinkState.CONNECTING):
            return
        self._machine.transition(LinkState.DISCONNECTED)
        try:
            await self.transport.disconnect()
        except OSError as e:
            self.logger.warning(f"Error while closing link to {self.identity}: {e}")
        self.logger.info(f"Disconnected from device {self.identity}")

    async def reconnect(self) -> bool:
        """
        Retry `connect()` until it succeeds.

        Only one sequence runs per session; a concurrent call returns False
        at once. Waits follow the backoff table, the circuit breaker holds
        attempts back after repeated failures, and `reconnect_max_attempts`
        (when non-zero) ends the loop. Returns True once connected.
        """
        if self.reconnecting:
            self.logger.debug(f"Reconnect to {self.identity} already in progress")
            return False
        self.reconnecting = True
        attempt = 0
        try:
            while not self._closed:
                delay = self.backoff.delay(attempt)
                if self.breaker.is_open:
                    delay = max(delay, self.breaker.remaining_cooldown())
                self.logger.warning(f"Reconnecting to {self.identity} in {delay:.0f}s (attempt {attempt + 1})")
                await asyncio.sleep(delay)
                if self._closed:
                    break
                attempt += 1
                try:
                    await self.breaker(self.connect)
                    return True
                except CircuitOpenError:
                    self.logger.warning(f"Reconnect to {self.identity} held back by open circuit")
                except DeviceConnectionError as e:
                    self.logger.error(f"Failed to reconnect to {self.identity}: {e}")
                max_attempts = self.timing.reconnect_max_attempts
                if max_attempts and attempt >= max_attempts:
                    self.logger.error(f"Giving up on {self.identity} after {attempt} reconnect attempts")
                    return False
            return False
        finally:
            self.reconnecting = False

    async def close(self) -> None:
        """Disconnect for good; a running reconnect loop stops at its next wake-up."""
        self._closed = True
        await self.disconnect()
        self._machine.transition(LinkState.SHUTDOWN)

    # ------------------------------------------------------------ requests

    async def get(self, cid: Optional[str] = None) -> None:
        await self._request(self.transport.get, "data", cid)

    async def refresh(self, cid: Optional[str] = None) -> None:
        await self._request(self.transport.refresh, "refresh", cid)

    async def _request(self, call, what: str, cid: Optional[str]) -> None:
        if not self.connected:
            self.logger.debug(f"Skipping {what} request for {self.identity}: not connected")
            return
        suffix = f" cid: {cid}" if cid else ""
        self.logger.debug(f"Requesting {what} for {self.identity}{suffix}")
        try:
            await call(cid)
        except (DeviceConnectionError, OSError) as e:
            self.logger.warning(f"{what.capitalize()} request for {self.identity}{suffix} failed: {e}")

    async def set(self, dps: Any, value: Any, cid: Optional[str] = None) -> Any:
        """Write one data point; raises DeviceConnectionError when it cannot be delivered."""
        if not self.connected:
            raise DeviceConnectionError(f"{self.identity}: not connected")
        self.logger.debug(f"Set device {self.identity} -> dps {dps}={value!r}" + (f" cid: {cid}" if cid else ""))
        try:
            return await self.transport.set(str(dps), value, cid)
        except OSError as e:
            raise DeviceConnectionError(f"{self.identity}: write failed: {e}") from e

    # ------------------------------------------------------------ heartbeat

    def _start_heartbeat(self) -> None:
        self._stop_heartbeat()
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    def _stop_heartbeat(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _heartbeat_loop(self) -> None:
        while self.connected:
            await asyncio.sleep(self.timing.heartbeat_interval)
            if not self.connected:
                break
            await self._heartbeat_tick()

    async def _heartbeat_tick(self) -> None:
        """One heartbeat period: judge the previous heartbeats, then send a new one."""
        limit = self.timing.heartbeat_max_missed
        if self.heartbeats_missed > limit:
            self.logger.error(f"Device id {self.identity.device_id} not responding to heartbeats...disconnecting")
            await self._link_lost()
            return
        if self.heartbeats_missed > 0:
            plural = "heartbeats" if self.heartbeats_missed > 1 else "heartbeat"
            self.logger.warning(f"Device id {self.identity.device_id} has missed {self.heartbeats_missed} {plural}")
        self.heartbeats_missed += 1
        try:
            await self.transport.heartbeat()
        except (DeviceConnectionError, OSError) as e:
            self.logger.debug(f"Heartbeat to {self.identity} failed: {e}")

    # -------------------------------------------------------- transport events

    async def _link_lost(self) -> None:
        if not self.connected:
            return
        await self.disconnect()
        await self._safe_callback(self.on_disconnected)

    async def _handle_data(self, payload: Dict[str, Any]) -> None:
        self.heartbeats_missed = 0
        await self._safe_callback(self.on_data, payload)

    async def _handle_heartbeat(self) -> None:
        self.heartbeats_missed = 0

    async def _handle_transport_disconnected(self) -> None:
        self.logger.info(f"Link to {self.identity} dropped by transport")
        await self._link_lost()

    async def _handle_error(self, error: Exception) -> None:
        self.logger.error(f"{self.identity} {error}")
        await self._link_lost()

    async def _safe_callback(self, callback, *args) -> None:
        if callback is None:
            return
        try:
            await callback(*args)
        except Exception as e:
            self.logger.exception(f"Error in session callback {getattr(callback, '__name__', callback)}: {e}")
