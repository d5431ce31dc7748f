"""Parking layout resolution with memory, persisted cache, remote and fallback tiers."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

import httpx
from pydantic import ValidationError

from ..errors import ConfigLoadFailed
from ..metrics import record_config_resolution
from .fallback import build_fallback_config
from .models import CacheMetadata, ConfigEnvelope, ConfigSource, FloorConfig, LocationConfig
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

CACHE_KEY = "parking_config_cache"
CACHE_METADATA_KEY = "parking_config_metadata"
CONFIG_ENDPOINT = "/public/parking-config"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SingleFlight:
    """
    At most one pending operation at a time.

    Callers arriving while an operation is pending attach to it and receive
    its result. The attach-or-start decision is made under a lock, and the
    pending task is shielded so a cancelled caller never cancels it.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._pending: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    async def run(self, factory: Callable[[], Awaitable]):
        """Start ``factory()`` unless an operation is pending, then await the pending one."""
        async with self._lock:
            if self._pending is None:
                self._pending = asyncio.ensure_future(factory())
                self._pending.add_done_callback(self._clear)
            task = self._pending

        return await asyncio.shield(task)

    def _clear(self, task: asyncio.Task) -> None:
        if self._pending is task:
            self._pending = None


class ConfigResolver:
    """
    Resolves the parking layout of a location.

    Resolution order: in-memory config, pending load, persisted cache (with
    a background refresh), remote endpoint, built-in fallback. Resolution
    never raises; the fallback layout is always available.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        store: KeyValueStore,
        base_url: str,
        api_token: str = "",
        cache_ttl: timedelta = timedelta(hours=24),
        sensors_per_floor: int = 40,
        clock: Callable[[], datetime] = _utc_now,
    ):
        """
        Initialize the resolver.

        Args:
            http_client: Client used for the parking-config endpoint
            store: Key/value store holding the persisted cache
            base_url: Backend API base URL
            api_token: Bearer token for the backend
            cache_ttl: Lifetime of a persisted cache entry
            sensors_per_floor: Sensor block size used by the fallback layout
            clock: Returns the current (timezone-aware) time
        """
        self.http_client = http_client
        self.store = store
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.cache_ttl = cache_ttl
        self.sensors_per_floor = sensors_per_floor
        self.clock = clock

        self._config: Optional[LocationConfig] = None
        self._loads = SingleFlight()
        self._background_tasks: set[asyncio.Task] = set()
        self.last_source: Optional[ConfigSource] = None
        self.remote_fetch_count = 0

    @property
    def is_fallback(self) -> bool:
        """Whether the layout currently served is the built-in fallback."""
        return self.last_source == ConfigSource.FALLBACK

    @property
    def current_config(self) -> Optional[LocationConfig]:
        return self._config

    async def get_config(self, location_id: str) -> LocationConfig:
        """
        Get the layout of a location.

        Args:
            location_id: Location identifier

        Returns:
            The resolved LocationConfig (never raises)
        """
        config = self._config
        if config is not None and config.location_id == location_id:
            self.last_source = ConfigSource.MEMORY
            record_config_resolution(ConfigSource.MEMORY.value)
            return config

        if self._loads.pending:
            logger.debug(
                f"Layout load already in flight, '{location_id}' attaches to it"
            )

        return await self._loads.run(lambda: self._load(location_id))

    async def get_floor_config(
        self, location_id: str, floor_number: int
    ) -> Optional[FloorConfig]:
        """Get the layout of one floor, or None if the location has no such floor."""
        config = await self.get_config(location_id)
        return config.get_floor(floor_number)

    async def refresh_config(self, location_id: str) -> LocationConfig:
        """Drop every cached copy and resolve again."""
        logger.info(f"Refreshing parking config for '{location_id}'")
        await self.clear_cache()
        return await self.get_config(location_id)

    async def clear_cache(self) -> None:
        """Clear the in-memory and persisted layout."""
        self._config = None
        try:
            await self.store.remove_item(CACHE_KEY)
            await self.store.remove_item(CACHE_METADATA_KEY)
        except Exception as e:
            logger.warning(f"Failed to clear persisted parking config: {e}")

    async def aclose(self) -> None:
        """Cancel background refreshes."""
        tasks = list(self._background_tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._background_tasks.clear()

    async def _load(self, location_id: str) -> LocationConfig:
        config, source = await self._load_with_fallback(location_id)
        # Cached here rather than by the caller so an abandoned load still lands
        self._config = config
        self.last_source = source
        record_config_resolution(source.value)
        logger.info(
            f"Resolved parking config '{config.location_id}' v{config.version} "
            f"from {source.value}"
        )
        return config

    async def _load_with_fallback(
        self, location_id: str
    ) -> tuple[LocationConfig, ConfigSource]:
        try:
            cached = await self._load_from_cache(location_id)
            if cached is not None:
                logger.info("Loaded parking config from cache")
                self._schedule_background_refresh(location_id)
                return cached, ConfigSource.CACHE

            logger.info("Cache miss - fetching parking config from API")
            return await self._fetch_and_cache(location_id), ConfigSource.REMOTE
        except Exception as e:
            logger.warning(f"Failed to load config from cache/API, using fallback: {e}")
            return (
                build_fallback_config(location_id, self.sensors_per_floor),
                ConfigSource.FALLBACK,
            )

    async def _fetch_and_cache(self, location_id: str) -> LocationConfig:
        url = f"{self.base_url}{CONFIG_ENDPOINT}/{location_id}"
        headers = {
            "Accept": "application/json",
            "Cache-Control": "no-cache",
        }
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"

        self.remote_fetch_count += 1
        try:
            response = await self.http_client.get(url, headers=headers)
            response.raise_for_status()
            envelope = ConfigEnvelope.model_validate(response.json())
        except (httpx.HTTPError, ValidationError, ValueError) as e:
            raise ConfigLoadFailed(f"Failed to fetch parking config from API: {e}") from e

        if not envelope.success or envelope.data is None:
            raise ConfigLoadFailed(
                f"Invalid API response format: {envelope.message or 'no data'}"
            )

        config = envelope.data
        await self._save_to_cache(config)
        return config

    async def _load_from_cache(self, location_id: str) -> Optional[LocationConfig]:
        try:
            metadata_json = await self.store.get_item(CACHE_METADATA_KEY)
            config_json = await self.store.get_item(CACHE_KEY)
            if not metadata_json or not config_json:
                return None

            metadata = CacheMetadata.model_validate_json(metadata_json)
            if not metadata.is_valid_for(location_id, self.clock()):
                logger.info(
                    f"Cached config not usable (location '{metadata.location_id}', "
                    f"expires {metadata.expires_at.isoformat()})"
                )
                return None

            return LocationConfig.model_validate_json(config_json)
        except Exception as e:
            logger.info(f"Error loading from cache: {e}")
            return None

    async def _save_to_cache(self, config: LocationConfig) -> None:
        metadata = CacheMetadata.create(config, self.clock(), self.cache_ttl)
        try:
            await self.store.set_item(CACHE_METADATA_KEY, metadata.model_dump_json())
            await self.store.set_item(CACHE_KEY, config.model_dump_json(by_alias=False))
            logger.info("Parking config cached successfully")
        except Exception as e:
            logger.error(f"Failed to save config to cache: {e}")

    def _schedule_background_refresh(self, location_id: str) -> None:
        task = asyncio.create_task(self._background_refresh(location_id))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _background_refresh(self, location_id: str) -> None:
        try:
            config = await self._fetch_and_cache(location_id)
            logger.debug(f"Background config update stored v{config.version}")
        except ConfigLoadFailed as e:
            logger.info(f"Background config update failed: {e}")
