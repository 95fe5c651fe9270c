"""Lifecycle of the binding to the printer service."""

import asyncio
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence

from .errors import BindError, ServiceUnavailableError
from .service import PrinterService, ServiceConnector, ServiceIdentity

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    UNBOUND = "unbound"
    BINDING = "binding"
    BOUND = "bound"
    RECONNECTING = "reconnecting"
    # Reconnect attempts exhausted; only reconnect() or detach() leave this state
    DISCONNECTED = "disconnected"


class ConnectionEvent(Enum):
    BIND_SUCCEEDED = "bind_succeeded"
    SERVICE_LOST = "service_lost"
    RECONNECT_DUE = "reconnect_due"


class ServiceConnectionManager:
    """Owns the binding to the printer service and the worker that talks to it.

    All blocking work (binds and remote calls) runs on a single worker thread,
    in submission order. Connection events are delivered through a queue and
    handled by one background task on the event loop, which is the only place
    the live service handle and the state are changed.

    After the service goes away a reconnect is scheduled after
    base_delay * 2**attempt seconds, for at most max_attempts attempts. The
    attempt counter resets on every successful bind.
    """

    def __init__(
        self,
        connector: ServiceConnector,
        identities: Sequence[ServiceIdentity],
        *,
        base_delay: float = 5.0,
        max_attempts: int = 5,
        unbind_timeout: float = 10.0,
    ):
        if not identities:
            raise ValueError("At least one service identity is required")
        self._connector = connector
        self._identities: List[ServiceIdentity] = list(identities)
        self.base_delay = base_delay
        self.max_attempts = max_attempts
        self.unbind_timeout = unbind_timeout

        self._state = ConnectionState.UNBOUND
        self._service: Optional[PrinterService] = None
        self._identity: Optional[ServiceIdentity] = None
        self._binding_token: Optional[object] = None
        self._attempts = 0
        # Delays of the current (or last) outage; never longer than max_attempts
        self.reconnect_schedule: List[float] = []

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._worker: Optional[ThreadPoolExecutor] = None
        self._events: Optional[asyncio.Queue] = None
        self._event_task: Optional[asyncio.Task] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._bind_lock: Optional[asyncio.Lock] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def attempts(self) -> int:
        """Reconnect attempts scheduled since the last successful bind."""
        return self._attempts

    @property
    def identity(self) -> Optional[ServiceIdentity]:
        """Identity of the currently bound service, if any."""
        return self._identity if self.is_connected else None

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.BOUND and self._service is not None

    @property
    def service(self) -> PrinterService:
        if not self.is_connected:
            raise ServiceUnavailableError()
        return self._service

    def backoff_delay(self, attempt: int) -> float:
        return self.base_delay * (2 ** attempt)

    async def attach(self) -> bool:
        """Start the worker and event handling, then bind to the service.

        Returns True if the first bind succeeded. A failed bind is retried in
        the background according to the backoff schedule.
        """
        if self._state is not ConnectionState.UNBOUND:
            return self.is_connected

        self._loop = asyncio.get_running_loop()
        self._worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="nyx-printer")
        self._events = asyncio.Queue()
        self._bind_lock = asyncio.Lock()
        self._event_task = asyncio.create_task(self._process_events())
        self._state = ConnectionState.BINDING
        return await self._bind()

    async def detach(self) -> None:
        """Cancel pending reconnects and release the binding."""
        if self._state is ConnectionState.UNBOUND and self._worker is None:
            return

        self._state = ConnectionState.UNBOUND
        self._cancel_reconnect()
        self._service = None
        self._identity = None
        self._binding_token = None

        task, self._event_task = self._event_task, None
        if task is not None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        self._events = None

        worker, self._worker = self._worker, None
        if worker is not None:
            # Queued behind any in-flight bind, so a late bind is released too
            release = asyncio.wrap_future(worker.submit(self._connector.unbind))
            try:
                await asyncio.wait_for(release, self.unbind_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Unbind did not finish within {self.unbind_timeout:g}s")
            worker.shutdown(wait=False)
        logger.info("Printer service unbound")

    async def reconnect(self) -> bool:
        """Reset the attempt counter and try to bind again right away."""
        if self._state is ConnectionState.UNBOUND:
            return False
        if self.is_connected:
            return True
        self._cancel_reconnect()
        self._attempts = 0
        self._state = ConnectionState.RECONNECTING
        return await self._bind()

    def submit(self, fn: Callable[..., Any], *args: Any) -> "asyncio.Future[Any]":
        """Run fn(service, *args) on the worker and return an awaitable future.

        Fails fast with ServiceUnavailableError when no service is bound.
        """
        service = self.service
        return self._loop.run_in_executor(self._worker, functools.partial(fn, service, *args))

    def notify_bound(self, service: PrinterService) -> Callable[[], None]:
        """Install a service that was bound outside attach() and reconnect().

        This is the hook for binds that complete on their own schedule, and
        for tests. Returns the disconnect callback of the new binding; the
        caller must invoke it when that service goes away.
        """
        token = object()
        self._post(ConnectionEvent.BIND_SUCCEEDED, (service, token))
        return self._disconnect_callback(token)

    def notify_service_lost(self) -> None:
        """Report that the currently bound service went away."""
        self._post(ConnectionEvent.SERVICE_LOST, self._binding_token)

    async def wait_idle(self) -> None:
        """Wait until every posted connection event has been handled."""
        if self._events is not None:
            await self._events.join()

    def _post(self, event: ConnectionEvent, payload: Any = None) -> None:
        if self._events is None:
            return
        self._events.put_nowait((event, payload))

    def _disconnect_callback(self, token: object) -> Callable[[], None]:
        def on_disconnected() -> None:
            loop = self._loop
            if loop is None or loop.is_closed():
                return
            loop.call_soon_threadsafe(self._post, ConnectionEvent.SERVICE_LOST, token)

        return on_disconnected

    async def _process_events(self) -> None:
        while True:
            event, payload = await self._events.get()
            try:
                await self._dispatch(event, payload)
            except Exception:
                logger.exception(f"Error handling connection event {event.value}")
            finally:
                self._events.task_done()

    async def _dispatch(self, event: ConnectionEvent, payload: Any) -> None:
        if event is ConnectionEvent.BIND_SUCCEEDED:
            service, token = payload
            self._handle_bound(service, token)
        elif event is ConnectionEvent.SERVICE_LOST:
            if payload is None or payload is not self._binding_token:
                logger.debug("Ignoring disconnect from a stale binding")
                return
            self._handle_lost()
        elif event is ConnectionEvent.RECONNECT_DUE:
            self._reconnect_handle = None
            if self._state is ConnectionState.RECONNECTING:
                await self._bind()

    async def _bind(self) -> bool:
        async with self._bind_lock:
            if self.is_connected:
                return True
            for identity in self._identities:
                if self._state is ConnectionState.UNBOUND:
                    return False
                token = object()
                try:
                    service = await self._loop.run_in_executor(
                        self._worker,
                        self._connector.bind,
                        identity,
                        self._disconnect_callback(token),
                    )
                except BindError as exc:
                    logger.warning(f"Bind to {identity.name} failed: {exc}")
                    continue
                except Exception:
                    logger.exception(f"Unexpected error binding to {identity.name}")
                    continue

                if self._state is ConnectionState.UNBOUND:
                    # Detached while the bind was running
                    return False
                self._identity = identity
                self._handle_bound(service, token)
                return True

            logger.warning("Could not bind to any printer service")
            self._schedule_reconnect()
            return False

    def _handle_bound(self, service: PrinterService, token: object) -> None:
        if self._state is ConnectionState.UNBOUND:
            return
        self._cancel_reconnect()
        self._service = service
        self._binding_token = token
        self._attempts = 0
        self._state = ConnectionState.BOUND
        name = self._identity.name if self._identity else "printer service"
        logger.info(f"Connected to {name}")

    def _handle_lost(self) -> None:
        logger.info("Printer service disconnected")
        self._service = None
        self._binding_token = None
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._state is ConnectionState.UNBOUND:
            return
        if self._attempts >= self.max_attempts:
            self._state = ConnectionState.DISCONNECTED
            logger.error(f"Giving up on the printer service after {self._attempts} reconnect attempts")
            return

        if self._attempts == 0:
            self.reconnect_schedule.clear()
        delay = self.backoff_delay(self._attempts)
        self._attempts += 1
        self._state = ConnectionState.RECONNECTING
        self.reconnect_schedule.append(delay)
        self._cancel_reconnect()
        self._reconnect_handle = self._loop.call_later(delay, self._post, ConnectionEvent.RECONNECT_DUE)
        logger.info(f"Reconnecting to the printer service in {delay:g}s (attempt {self._attempts}/{self.max_attempts})")

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None
