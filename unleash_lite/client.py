"""
Unleash client: keeps the local feature dataset in sync and reports metrics.
"""

import asyncio
import logging
import threading
from enum import Enum
from typing import Callable, Dict, List, Optional

from unleash_lite.config import ClientConfig
from unleash_lite.entity_tag import EntityTag
from unleash_lite.errors import RemoteError
from unleash_lite.evaluate import (
    ContextLike,
    EvaluationEngine,
    MetricsBucket,
    ResolvedFlag,
    Variant,
)
from unleash_lite.metrics import RequestStats
from unleash_lite.remote import ClientIdentity, NotModified, RemoteClient
from unleash_lite.state import EvaluationState

logger = logging.getLogger("unleash_lite")


class ClientState(str, Enum):
    """Lifecycle states of the client."""

    STOPPED = "stopped"
    RUNNING = "running"


class UnleashClient:
    """
    Feature flag client.

    Example:
        ```python
        client = UnleashClient(ClientConfig(
            url="https://unleash.example.com",
            app_name="my-app",
            api_token="default:production.abc123",
        ))
        client.start_background()
        await client.wait_until_ready()

        if client.is_enabled("my-feature", {"userId": "user-123"}):
            # Feature is enabled
            pass

        await client.close()
        ```
    """

    def __init__(self, config: ClientConfig, engine: Optional[EvaluationEngine] = None):
        """
        Initialize the client.

        Args:
            config: Client configuration
            engine: Evaluation engine, ``YggdrasilEngine`` when omitted

        Raises:
            ValidationError: If the configuration is invalid
            InvalidCredentialError: If the API token cannot be parsed
        """
        token = config.validate()

        self._config = config
        self._identity = ClientIdentity(
            app_name=config.app_name,
            environment=token.environment,
            instance_id=config.instance_id,
        )
        self._remote = RemoteClient(
            config.base_url,
            self._identity,
            token.secret,
            timeout=config.request_timeout,
        )
        self._state = EvaluationState(config.app_name, token.environment, engine)
        self._query = config.features_query.to_params() if config.features_query else None

        self._last_etag: Optional[EntityTag] = None
        self._enabled = threading.Event()
        self._looping = False
        self._wakeup = asyncio.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._task: Optional[asyncio.Task] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._ready = asyncio.Event()
        self._first_cycle = asyncio.Event()

        # Event callbacks
        self._callbacks: Dict[str, List[Callable]] = {
            "ready": [],
            "flags_updated": [],
            "error": [],
            "registered": [],
            "metrics_sent": [],
            "stopped": [],
        }

    def on(self, event: str, callback: Callable) -> "UnleashClient":
        """
        Register an event callback.

        Args:
            event: Event name
            callback: Callback function

        Returns:
            Self for chaining
        """
        if event in self._callbacks:
            self._callbacks[event].append(callback)
        return self

    def off(self, event: str, callback: Callable) -> "UnleashClient":
        """Remove an event callback."""
        if event in self._callbacks and callback in self._callbacks[event]:
            self._callbacks[event].remove(callback)
        return self

    def _emit(self, event: str, *args) -> None:
        """Emit an event to all registered callbacks."""
        for callback in self._callbacks.get(event, []):
            try:
                callback(*args)
            except Exception as e:
                logger.warning(f"Error in {event} callback: {e}")

    @property
    def state(self) -> ClientState:
        return ClientState.RUNNING if self._enabled.is_set() else ClientState.STOPPED

    @property
    def etag(self) -> Optional[EntityTag]:
        """Entity tag of the dataset currently held."""
        return self._last_etag

    @property
    def identity(self) -> ClientIdentity:
        return self._identity

    @property
    def evaluation_state(self) -> EvaluationState:
        return self._state

    @property
    def is_ready(self) -> bool:
        """True once a dataset has been ingested."""
        return self._ready.is_set()

    async def start(self) -> None:
        """
        Run the refresh loop until ``stop()`` is called.

        Calling ``start()`` while the loop is already running only re-asserts
        the running state.
        """
        self._enabled.set()
        if self._looping:
            return

        self._looping = True
        self._loop = asyncio.get_running_loop()
        self._loop_task = asyncio.current_task()
        self._wakeup.clear()
        logger.info(f"Starting client for {self._identity.app_name} ({self._identity.environment})")

        try:
            if not self._config.disable_metrics:
                await self._register()

            while self._enabled.is_set():
                try:
                    await self.poll_once()
                except Exception as e:
                    logger.warning(f"Refresh cycle failed: {e}")
                    self._emit("error", e)
                self._first_cycle.set()
                if not self._enabled.is_set():
                    break
                await self._sleep()
        finally:
            self._looping = False
            self._loop_task = None
            self._first_cycle.set()
            logger.info("Client stopped")
            self._emit("stopped")

    def stop(self) -> None:
        """
        Stop the refresh loop.

        An in-flight request is allowed to finish; no further cycle starts.
        Safe to call from any thread.
        """
        self._enabled.clear()
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._wakeup.set()
        else:
            loop.call_soon_threadsafe(self._wakeup.set)

    def start_background(self) -> asyncio.Task:
        """Run ``start()`` as a background task on the current loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.start())
        else:
            self._enabled.set()
        return self._task

    async def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until the first dataset is ingested.

        Returns:
            True if ready, False if the timeout elapsed first
        """
        try:
            await asyncio.wait_for(self._ready.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def poll_once(self) -> None:
        """Run one refresh cycle and report metrics for it."""
        bucket = await self._refresh()
        if not self._config.disable_metrics:
            await self._send_metrics(bucket)

    async def _sleep(self) -> None:
        try:
            await asyncio.wait_for(self._wakeup.wait(), self._config.refresh_interval)
        except asyncio.TimeoutError:
            pass
        self._wakeup.clear()

    async def _register(self) -> None:
        try:
            await self._remote.register(self._config.refresh_interval)
        except RemoteError as e:
            logger.warning(f"Failed to register client: {e.message}")
            self._emit("error", e)
            return
        self._emit("registered")

    async def _send_metrics(self, bucket: Optional[MetricsBucket]) -> None:
        if bucket is None:
            return
        try:
            await self._remote.push_metrics(bucket)
        except RemoteError as e:
            logger.warning(f"Failed to send metrics: {e.message}")
            self._emit("error", e)
            return
        self._emit("metrics_sent", bucket)

    async def _refresh(self) -> Optional[MetricsBucket]:
        """Fetch features and return the metrics accumulated for this cycle."""
        etag = self._last_etag

        try:
            response = await self._remote.fetch_features(etag, self._query)
        except RemoteError as e:
            logger.warning(f"Error fetching features: {e.message}")
            self._emit("error", e)
            return None

        if isinstance(response, NotModified):
            logger.debug(f"No update needed, keeping {response.etag}")
            return self._state.extract_metrics()

        logger.debug(f"Got updated features, new etag {response.etag}")

        metrics = self._state.extract_metrics()
        warnings = self._state.ingest(response.dataset)
        # only advance the tag once the dataset it names is in place
        self._last_etag = response.etag
        if warnings:
            logger.warning(f"Failed to hydrate features: {[str(w) for w in warnings]}")

        first = not self._ready.is_set()
        self._ready.set()
        self._emit("flags_updated", warnings or [])
        if first:
            self._emit("ready")
        return metrics

    def is_enabled(self, name: str, context: ContextLike = None) -> bool:
        """
        Check if a flag is enabled.

        Args:
            name: The flag name
            context: Evaluation context; app name and environment are filled in when unset

        Returns:
            True if the flag is enabled
        """
        return self._state.is_enabled(name, context)

    def get_variant(self, name: str, context: ContextLike = None) -> Variant:
        """Get the variant of a flag for a context."""
        return self._state.get_variant(name, context)

    def resolve_all(self, context: ContextLike = None) -> Dict[str, ResolvedFlag]:
        """Resolve every flag for a context."""
        return self._state.resolve_all(context)

    def get_stats(self) -> RequestStats:
        """Get transport statistics for requests to the server."""
        return self._remote.get_stats()

    async def close(self) -> None:
        """Stop the loop and release the HTTP client."""
        self.stop()

        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        # start() awaited directly rather than through start_background()
        loop_task = self._loop_task
        if loop_task is not None and loop_task is not asyncio.current_task():
            try:
                await loop_task
            except asyncio.CancelledError:
                pass

        await self._remote.close()

    async def __aenter__(self) -> "UnleashClient":
        """Start in the background and wait for the first refresh cycle."""
        self.start_background()
        await self._first_cycle.wait()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
