"""Fixed-delay snapshot polling with a single-flight guard."""

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from .errors import ChargewatchError, DeviceNotFound, StoreUnavailable
from .logging_utils import log_error, log_poller_event
from .models import DeviceSnapshot
from .plugins.base import PluginContext, PollerHook, PollerPlugin
from .settings import DEFAULT_POLL_INTERVAL

logger = logging.getLogger(__name__)

SnapshotFetcher = Callable[[str], Awaitable[DeviceSnapshot]]
SnapshotCallback = Callable[[DeviceSnapshot], Any]

DEFAULT_CONSUMER = "default"


class PollerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


def _error_type(error: BaseException) -> str:
    if isinstance(error, StoreUnavailable):
        return "store_unavailable"
    if isinstance(error, DeviceNotFound):
        return "device_not_found"
    return "poll_error"


class SnapshotPoller:
    """
    Re-derives a device snapshot on a fixed delay and hands it to a consumer.

    One poller serves one consumer. ``start`` fetches immediately and then
    sleeps ``interval`` seconds after each fetch completes. At most one fetch
    is in flight at a time; a tick or ``refresh`` that finds one running joins
    it instead of issuing a second query.

    ``stop`` is synchronous. It bumps the generation counter and cancels the
    timer; a fetch still in flight is left to finish, and its result is
    discarded because its generation no longer matches.

    Fetch failures are logged and swallowed: ``last_snapshot`` keeps the
    last-known-good value and polling continues on the next tick.
    """

    def __init__(
        self,
        fetch_snapshot: SnapshotFetcher,
        interval: float = DEFAULT_POLL_INTERVAL,
        plugins: list[PollerPlugin] | None = None,
        consumer_id: str = DEFAULT_CONSUMER,
    ):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")

        self._fetch_snapshot = fetch_snapshot
        self.interval = interval
        self.consumer_id = consumer_id

        self._state = PollerState.IDLE
        self._generation = 0
        self._device_id: str | None = None
        self._on_snapshot: SnapshotCallback | None = None
        self._timer: asyncio.Task | None = None
        self._in_flight: asyncio.Task | None = None
        self._in_flight_generation = 0

        self.last_snapshot: DeviceSnapshot | None = None
        self.last_error: BaseException | None = None
        self.failure_count = 0
        self.poll_count = 0

        # Initialize plugin system
        self.plugins: list[PollerPlugin] = plugins or []
        self._plugin_hooks: dict[PollerHook, list[tuple[PollerPlugin, str]]] = {}
        self._plugins_initialized = False
        self._register_plugins()

    @property
    def state(self) -> PollerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is PollerState.RUNNING

    @property
    def device_id(self) -> str | None:
        return self._device_id

    @property
    def generation(self) -> int:
        return self._generation

    def start(
        self,
        device_id: str,
        on_snapshot: SnapshotCallback,
        interval: float | None = None,
    ) -> None:
        """
        Start polling ``device_id`` and deliver each snapshot to ``on_snapshot``.

        Must be called from a running event loop. A poller that is already
        running is stopped first.
        """
        if interval is not None and interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        loop = asyncio.get_running_loop()

        if interval is not None:
            self.interval = interval

        if self.is_running:
            self.stop()

        if device_id != self._device_id:
            self.last_snapshot = None
            self.last_error = None

        self._device_id = device_id
        self._on_snapshot = on_snapshot
        self._generation += 1
        self._state = PollerState.RUNNING

        generation = self._generation
        self._timer = loop.create_task(
            self._run(generation),
            name=f"snapshot-poller:{device_id}:{self.consumer_id}",
        )
        log_poller_event(
            logger,
            "start",
            device_id=device_id,
            consumer_id=self.consumer_id,
            interval=self.interval,
            generation=generation,
        )

    def stop(self) -> None:
        """Stop polling. Returns once the timer is cancelled."""
        if not self.is_running:
            return

        self._generation += 1
        self._state = PollerState.IDLE
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        log_poller_event(
            logger,
            "stop",
            device_id=self._device_id,
            consumer_id=self.consumer_id,
        )

    async def close(self) -> None:
        """Stop polling and release plugin resources."""
        self.stop()
        if not self._plugins_initialized:
            return

        for plugin in self.plugins:
            try:
                await plugin.cleanup(self)
            except Exception as e:
                log_error(
                    logger,
                    "plugin_cleanup_error",
                    f"Error cleaning up plugin {plugin.__class__.__name__}: {e}",
                    device_id=self._device_id,
                    plugin=plugin.__class__.__name__,
                    exc_info=e,
                )
        self._plugins_initialized = False

    async def refresh(self) -> DeviceSnapshot | None:
        """
        Fetch a snapshot now instead of waiting for the next tick.

        Joins a fetch that is already in flight. When the poller is idle, or
        when called from a consumer or plugin hook of the running fetch, the
        last-known snapshot is returned without querying.
        """
        if self.is_running:
            generation = self._generation
            await self._initialize_plugins()
            await self._poll_once(generation)
        return self.last_snapshot

    async def _run(self, generation: int) -> None:
        await self._initialize_plugins()
        while generation == self._generation:
            await self._poll_once(generation)
            if generation != self._generation:
                break
            await asyncio.sleep(self.interval)

    async def _poll_once(self, generation: int) -> None:
        """Run one fetch for ``generation``, joining any fetch already in flight."""
        while generation == self._generation:
            in_flight = self._in_flight
            if in_flight is not None and in_flight is asyncio.current_task():
                # Called from a consumer or hook of this very fetch
                return
            if in_flight is None or in_flight.done():
                self._in_flight_generation = generation
                self._in_flight = asyncio.get_running_loop().create_task(self._fetch(generation))
                await asyncio.shield(self._in_flight)
                return

            if self._in_flight_generation == generation:
                log_poller_event(
                    logger,
                    "skip",
                    device_id=self._device_id,
                    level=logging.DEBUG,
                    consumer_id=self.consumer_id,
                )
                await asyncio.shield(in_flight)
                return

            # A fetch from a stopped run is still draining; let it finish first
            await asyncio.shield(in_flight)

    async def _fetch(self, generation: int) -> DeviceSnapshot | None:
        device_id = self._device_id
        previous = self.last_snapshot

        await self._execute_plugin_hooks(
            PollerHook.BEFORE_POLL, PluginContext(self, device_id, previous=previous)
        )

        started = time.monotonic()
        try:
            snapshot = await self._fetch_snapshot(device_id)
        except Exception as e:
            duration = time.monotonic() - started
            if generation != self._generation:
                self._log_discard(device_id, generation)
                return None

            self.failure_count += 1
            self.last_error = e
            log_error(
                logger,
                _error_type(e),
                f"Failed to fetch snapshot for {device_id}: {e}",
                device_id=device_id,
                consumer_id=self.consumer_id,
                failure_count=self.failure_count,
                exc_info=None if isinstance(e, ChargewatchError) else e,
            )
            await self._execute_plugin_hooks(
                PollerHook.POLL_FAILED,
                PluginContext(self, device_id, previous=previous, error=e, duration=duration),
            )
            return None

        duration = time.monotonic() - started
        if generation != self._generation:
            self._log_discard(device_id, generation)
            return None

        self.last_snapshot = snapshot
        self.last_error = None
        self.poll_count += 1

        await self._deliver(snapshot)
        await self._execute_plugin_hooks(
            PollerHook.AFTER_POLL,
            PluginContext(
                self, device_id, snapshot=snapshot, previous=previous, duration=duration
            ),
        )
        return snapshot

    def _log_discard(self, device_id: str | None, generation: int) -> None:
        log_poller_event(
            logger,
            "discard",
            device_id=device_id,
            level=logging.DEBUG,
            consumer_id=self.consumer_id,
            generation=generation,
        )

    async def _deliver(self, snapshot: DeviceSnapshot) -> None:
        if self._on_snapshot is None:
            return
        try:
            result = self._on_snapshot(snapshot)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            log_error(
                logger,
                "consumer_error",
                f"Snapshot consumer failed for {snapshot.device_id}: {e}",
                device_id=snapshot.device_id,
                consumer_id=self.consumer_id,
                exc_info=e,
            )

    async def _initialize_plugins(self) -> None:
        if self._plugins_initialized:
            return
        self._plugins_initialized = True
        for plugin in self.plugins:
            try:
                await plugin.initialize(self)
            except Exception as e:
                log_error(
                    logger,
                    "plugin_initialization_error",
                    f"Failed to initialize plugin {plugin.__class__.__name__}: {e}",
                    device_id=self._device_id,
                    plugin=plugin.__class__.__name__,
                    exc_info=e,
                )

    def _register_plugins(self):
        """Register all plugins and build hook mapping."""
        for plugin in self.plugins:
            try:
                hooks = plugin.hooks()
                for hook, method_name in hooks.items():
                    if hook not in self._plugin_hooks:
                        self._plugin_hooks[hook] = []
                    self._plugin_hooks[hook].append((plugin, method_name))
            except Exception as e:
                log_error(
                    logger,
                    "plugin_registration_error",
                    f"Failed to register plugin {plugin.__class__.__name__}: {e}",
                    plugin=plugin.__class__.__name__,
                    exc_info=e,
                )

    async def _execute_plugin_hooks(self, hook: PollerHook, context: PluginContext):
        """Execute all registered plugin hooks for a given point in the poll cycle."""
        if hook not in self._plugin_hooks:
            return

        for plugin, method_name in self._plugin_hooks[hook]:
            try:
                method = getattr(plugin, method_name)
                await method(context)
            except Exception as e:
                log_error(
                    logger,
                    "plugin_execution_error",
                    f"Error executing {plugin.__class__.__name__}.{method_name} "
                    f"for hook {hook.value}: {e}",
                    device_id=context.device_id,
                    plugin=plugin.__class__.__name__,
                    hook=hook.value,
                    method=method_name,
                    exc_info=e,
                )


class PollerRegistry:
    """
    Keeps exactly one SnapshotPoller per (device_id, consumer_id) pair.

    Starting a pair that is already polling restarts its poller rather than
    adding a second timer, so a viewer never issues duplicate queries.
    """

    def __init__(
        self,
        fetch_snapshot: SnapshotFetcher,
        interval: float = DEFAULT_POLL_INTERVAL,
        plugin_factory: Callable[[], list[PollerPlugin]] | None = None,
    ):
        self._fetch_snapshot = fetch_snapshot
        self.interval = interval
        self._plugin_factory = plugin_factory
        self._pollers: dict[tuple[str, str], SnapshotPoller] = {}

    def __len__(self) -> int:
        return len(self._pollers)

    def get(self, device_id: str, consumer_id: str = DEFAULT_CONSUMER) -> SnapshotPoller | None:
        return self._pollers.get((device_id, consumer_id))

    def running(self) -> list[tuple[str, str]]:
        """Keys of all pollers currently running."""
        return [key for key, poller in self._pollers.items() if poller.is_running]

    def start(
        self,
        device_id: str,
        on_snapshot: SnapshotCallback,
        consumer_id: str = DEFAULT_CONSUMER,
        interval: float | None = None,
    ) -> SnapshotPoller:
        """Start (or restart) polling ``device_id`` for ``consumer_id``."""
        key = (device_id, consumer_id)
        poller = self._pollers.get(key)
        if poller is None:
            plugins = self._plugin_factory() if self._plugin_factory else []
            poller = SnapshotPoller(
                self._fetch_snapshot,
                interval=self.interval,
                plugins=plugins,
                consumer_id=consumer_id,
            )
            self._pollers[key] = poller

        poller.start(device_id, on_snapshot, interval=interval)
        return poller

    def stop(self, device_id: str, consumer_id: str = DEFAULT_CONSUMER) -> bool:
        """Stop a poller; returns False if none is registered for the pair."""
        poller = self._pollers.get((device_id, consumer_id))
        if poller is None:
            return False
        poller.stop()
        return True

    async def remove(self, device_id: str, consumer_id: str = DEFAULT_CONSUMER) -> None:
        """Stop and forget a poller, as on consumer teardown."""
        poller = self._pollers.pop((device_id, consumer_id), None)
        if poller is not None:
            await poller.close()

    def stop_all(self) -> None:
        for poller in self._pollers.values():
            poller.stop()

    async def close(self) -> None:
        """Stop every poller and release plugin resources."""
        for poller in list(self._pollers.values()):
            await poller.close()
        self._pollers.clear()
