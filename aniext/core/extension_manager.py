"""
Extension Manager - Extension loading, lifecycle and host-facing queries.

This module runs the load pipeline (validation, version check, backend
selection, surface wiring, initialization, registration) and provides
the unified interface the host uses to query extensions. Failures are
isolated per extension: a broken extension produces a failed load
report or a failed invocation result and never blocks the others.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from aniext import __version__
from aniext.backends import PluginBackend, default_backends
from aniext.core.cache import CachePolicy, ExtractionCache
from aniext.core.capabilities import Capability
from aniext.core.config_manager import ConfigManager
from aniext.core.config_schemas import AppSettings
from aniext.core.dispatcher import Dispatcher
from aniext.core.exceptions import AniExtError, ExtensionNotFound, ValidationError
from aniext.core.instance import ExtensionInstance
from aniext.core.manifest import Manifest, ManifestValidator, parse_manifest
from aniext.core.models import (
    CompatibilityStatus,
    ExtensionKind,
    ExtensionSummary,
    InvocationResult,
    LifecycleState,
    LoadReport,
)
from aniext.core.versioning import CompatibilityChecker, CompatibilityReport
from aniext.host.storage import JsonFileStore, MemoryStore, StorageBackend
from aniext.host.surface import build_surface
from aniext.hosters.provider import BUILTIN_HOSTERS_ID, hosters_manifest


logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "manifest.json"


def read_manifest(directory: Union[str, Path]) -> Dict[str, Any]:
    """
    Read ``manifest.json`` from an extension directory.

    Raises:
        ValidationError: If the file is missing or is not a JSON object
    """
    path = Path(directory) / MANIFEST_FILENAME
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ValidationError(f"No {MANIFEST_FILENAME} in {directory}", field_name="manifest")
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError(f"Malformed {MANIFEST_FILENAME}: {e}", field_name="manifest")

    if not isinstance(data, dict):
        raise ValidationError(f"{MANIFEST_FILENAME} must contain a JSON object", field_name="manifest")
    return data


class ExtensionManager:
    """
    Manages extension instances across all backend formats.

    Owns the dispatcher, the extraction cache and the per-extension
    surfaces; coordinates persistence through the configuration manager
    when one is supplied.
    """

    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        host_version: Optional[str] = None,
        backends: Optional[Dict[Any, PluginBackend]] = None,
        storage_backend: Optional[StorageBackend] = None,
        cache: Optional[ExtractionCache] = None,
    ):
        """
        Initialize extension manager.

        Args:
            config_manager: Configuration source and persistence (optional)
            host_version: Version reported to extensions; defaults to the
                          configured override, then the package version
            backends: Adapter per backend format
            storage_backend: Storage for extension namespaces
            cache: Extraction cache shared by all instances
        """
        self.config_manager = config_manager
        settings = config_manager.settings if config_manager else AppSettings()
        self.settings = settings

        self.host_version = host_version or settings.runtime.host_version or __version__
        self.checker = CompatibilityChecker(self.host_version)
        self.validator = ManifestValidator()
        self.backends = backends or default_backends()

        if storage_backend is None:
            storage_backend = JsonFileStore(config_manager.storage_dir) if config_manager else MemoryStore()
        self.storage_backend = storage_backend

        policy = CachePolicy(
            listing_ttl=settings.cache.listing_ttl,
            stream_ttl=settings.cache.stream_ttl,
            enabled=settings.cache.enabled,
        )
        self.dispatcher = Dispatcher(
            cache=cache or ExtractionCache(),
            policy=policy,
            max_concurrent=settings.runtime.max_concurrent_calls,
            call_timeout=settings.runtime.call_timeout,
        )

        self._load_errors: Dict[str, str] = {}

    # -- loading ------------------------------------------------------------

    async def load(
        self,
        manifest_data: Dict[str, Any],
        base_dir: Optional[Union[str, Path]] = None,
        enabled: bool = True,
        persist: bool = False,
    ) -> LoadReport:
        """
        Run the full load pipeline for one manifest.

        Args:
            manifest_data: Raw manifest document
            base_dir: Directory that locator paths are relative to
            enabled: Whether the instance is dispatchable once ready
            persist: Record the extension in extensions.json on success

        Returns:
            LoadReport; the instance is registered only on success
        """
        raw_id = manifest_data.get("id") if isinstance(manifest_data, dict) else None
        extension_id = raw_id if isinstance(raw_id, str) else None

        validation = self.validator.validate(manifest_data)
        warnings = validation.warning_messages
        if not validation.valid:
            return self._failed(extension_id, validation.error_messages, warnings)

        try:
            manifest = parse_manifest(manifest_data, self.validator)
        except ValidationError as e:
            return self._failed(extension_id, e.details if isinstance(e.details, list) else [str(e)], warnings)
        extension_id = manifest.id

        compatibility = self.checker.check(manifest.target_version_range)
        if not compatibility.is_compatible:
            return self._failed(extension_id, [compatibility.reason], warnings)
        if compatibility.status == CompatibilityStatus.COMPATIBLE_WITH_WARNING:
            warnings.append(compatibility.reason)

        backend = self.backends.get(manifest.backend_format)
        if backend is None:
            return self._failed(extension_id, [f"No backend for format '{manifest.backend_format.value}'"], warnings)

        if self.dispatcher.get(extension_id) is not None:
            logger.info(f"Replacing loaded extension {extension_id}")
            await self.unload(extension_id)

        source = Path(base_dir) if base_dir is not None else None
        instance = await self._start_instance(manifest, backend, source, enabled)
        if not instance.is_ready:
            return self._failed(extension_id, [instance.last_error or "Initialization failed"], warnings)

        self.dispatcher.register(instance)
        self._load_errors.pop(extension_id, None)

        if persist and self.config_manager is not None:
            self.config_manager.upsert_extension(manifest_data, source, enabled)

        logger.info(f"Loaded extension {extension_id} {manifest.version} ({backend.name})")
        return LoadReport(success=True, extension_id=extension_id, warnings=warnings)

    async def _start_instance(
        self,
        manifest: Manifest,
        backend: PluginBackend,
        source: Optional[Path],
        enabled: bool,
    ) -> ExtensionInstance:
        """Create, wire and initialize an instance; it ends READY or ERROR."""
        surface = build_surface(
            manifest,
            self.host_version,
            storage_backend=self.storage_backend,
            default_rate_limit_ms=self.settings.http.default_rate_limit_ms,
            timeout=self.settings.http.timeout,
            user_agent=self.settings.http.user_agent,
            quota_bytes=self.settings.storage.quota_bytes,
        )
        instance = ExtensionInstance(manifest, backend, surface, source=source, enabled=enabled)
        instance.state = LifecycleState.INITIALIZING

        try:
            instance.handle = await backend.create(manifest, source)
            await backend.initialize(instance.handle, surface)
        except AniExtError as e:
            instance.last_error = str(e)
        except Exception as e:
            logger.exception(f"Unexpected error initializing {manifest.id}")
            instance.last_error = f"Unexpected error: {e}"
        else:
            instance.mark_ready()
            return instance

        instance.state = LifecycleState.ERROR
        logger.error(f"Failed to initialize {manifest.id}: {instance.last_error}")
        if instance.handle is not None:
            await self._shutdown_backend(instance)
        await surface.close()
        return instance

    def _failed(self, extension_id: Optional[str], errors: List[str], warnings: List[str]) -> LoadReport:
        if extension_id:
            self._load_errors[extension_id] = "; ".join(errors)
        logger.warning(f"Extension {extension_id or '<unknown>'} not loaded: {'; '.join(errors)}")
        return LoadReport(success=False, extension_id=extension_id, errors=errors, warnings=warnings)

    async def load_directory(
        self,
        directory: Union[str, Path],
        enabled: bool = True,
        persist: bool = False,
    ) -> LoadReport:
        """Load the extension whose manifest.json lives in ``directory``."""
        directory = Path(directory).expanduser().resolve()
        try:
            manifest_data = read_manifest(directory)
        except ValidationError as e:
            return self._failed(None, [str(e)], [])
        return await self.load(manifest_data, base_dir=directory, enabled=enabled, persist=persist)

    async def discover(self, root: Union[str, Path], persist: bool = False) -> List[LoadReport]:
        """Load every immediate subdirectory of ``root`` holding a manifest."""
        root = Path(root).expanduser()
        if not root.is_dir():
            logger.warning(f"Extensions directory does not exist: {root}")
            return []

        reports = []
        for candidate in sorted(root.iterdir()):
            if candidate.is_dir() and (candidate / MANIFEST_FILENAME).exists():
                try:
                    reports.append(await self.load_directory(candidate, persist=persist))
                except Exception as e:
                    logger.exception(f"Unexpected error loading {candidate}")
                    reports.append(self._failed(None, [f"Unexpected error: {e}"], []))
        logger.info(f"Discovery complete: {sum(r.success for r in reports)}/{len(reports)} extensions loaded")
        return reports

    async def load_builtin_hosters(self) -> LoadReport:
        """Load the built-in hoster stream provider."""
        return await self.load(hosters_manifest(self.host_version))

    async def restore(self) -> List[LoadReport]:
        """
        Reload everything recorded in the configuration.

        Each record is loaded independently; disabled records are loaded
        but not dispatchable.
        """
        reports = []
        if self.settings.runtime.load_builtin_hosters:
            reports.append(await self.load_builtin_hosters())

        if self.config_manager is None:
            return reports

        for record in self.config_manager.get_extension_records():
            try:
                report = await self.load(record.manifest, base_dir=record.source_path, enabled=record.enabled)
            except Exception as e:
                logger.exception(f"Unexpected error restoring {record.id}")
                report = self._failed(record.id, [f"Unexpected error: {e}"], [])
            reports.append(report)

        loaded = sum(1 for r in reports if r.success)
        logger.info(f"Restored {loaded}/{len(reports)} extensions")
        return reports

    async def reload(self, extension_id: str) -> LoadReport:
        """
        Unload and load an extension again, re-reading its manifest from disk.

        Raises:
            ExtensionNotFound: If no extension with this id is loaded
        """
        instance = self._require(extension_id)
        manifest_data = instance.manifest.to_dict()
        if instance.source is not None and (instance.source / MANIFEST_FILENAME).exists():
            try:
                manifest_data = read_manifest(instance.source)
            except ValidationError as e:
                return self._failed(extension_id, [str(e)], [])

        source, enabled = instance.source, instance.enabled
        await self.unload(extension_id)
        return await self.load(manifest_data, base_dir=source, enabled=enabled)

    async def unload(self, extension_id: str) -> bool:
        """
        Shut an extension down and release its surface.

        The instance leaves READY before its backend is shut down, so
        in-flight calls finish without their results being used.

        Returns:
            True if an extension was unloaded
        """
        instance = self.dispatcher.get(extension_id)
        if instance is None:
            return False

        instance.state = LifecycleState.SHUTTING_DOWN
        self.dispatcher.unregister(extension_id)
        await self._shutdown_backend(instance)
        await instance.surface.close()
        instance.state = LifecycleState.UNLOADED
        logger.info(f"Unloaded extension {extension_id}")
        return True

    async def _shutdown_backend(self, instance: ExtensionInstance) -> None:
        try:
            await instance.backend.shutdown(instance.handle)
        except AniExtError as e:
            logger.warning(f"Shutdown of {instance.id} reported an error: {e}")
        except Exception as e:
            logger.exception(f"Unexpected error shutting down {instance.id}: {e}")

    async def remove(self, extension_id: str) -> bool:
        """Unload an extension and forget its installation record."""
        unloaded = await self.unload(extension_id)
        forgotten = self.config_manager.remove_extension(extension_id) if self.config_manager else False
        self._load_errors.pop(extension_id, None)
        return unloaded or forgotten

    def set_enabled(self, extension_id: str, enabled: bool) -> None:
        """
        Enable or disable a loaded extension and persist the choice.

        Raises:
            ExtensionNotFound: If no extension with this id is loaded
        """
        instance = self._require(extension_id)
        instance.enabled = enabled
        if self.config_manager is not None and self.config_manager.extensions.get(extension_id):
            self.config_manager.set_extension_enabled(extension_id, enabled)
        logger.info(f"Extension {extension_id} {'enabled' if enabled else 'disabled'}")

    # -- queries ------------------------------------------------------------

    def _require(self, extension_id: str) -> ExtensionInstance:
        instance = self.dispatcher.get(extension_id)
        if instance is None:
            raise ExtensionNotFound(f"No extension loaded with id '{extension_id}'", extension_id=extension_id)
        return instance

    def list_extensions(self) -> List[ExtensionSummary]:
        """Summaries of every loaded extension, enabled or not."""
        return [instance.summary() for instance in self.dispatcher.all_instances()]

    def list_by_capability(self, capability: Union[str, Capability]) -> List[ExtensionSummary]:
        """Dispatchable extensions advertising ``capability``."""
        name = capability.value if isinstance(capability, Capability) else str(capability)
        return [instance.summary() for instance in self.dispatcher.instances(capability=name)]

    def list_by_kind(self, kind: Union[str, ExtensionKind]) -> List[ExtensionSummary]:
        """Dispatchable extensions of one kind."""
        return [instance.summary() for instance in self.dispatcher.instances(kind=kind)]

    def get_summary(self, extension_id: str) -> Optional[ExtensionSummary]:
        instance = self.dispatcher.get(extension_id)
        return instance.summary() if instance else None

    def check_compatibility(self, target: Union[str, Dict[str, Any]]) -> CompatibilityReport:
        """
        Check a loaded extension (by id) or a raw manifest against the host.

        Raises:
            ExtensionNotFound: If an id is given and nothing is loaded under it
            ValidationError: If a raw manifest is invalid
        """
        if isinstance(target, str):
            manifest = self._require(target).manifest
        else:
            manifest = parse_manifest(target, self.validator)
        return self.checker.check(manifest.target_version_range)

    # -- capability calls ---------------------------------------------------

    async def invoke(self, extension_id: str, capability: str, args: Optional[Dict[str, Any]] = None) -> InvocationResult:
        """Dispatch any capability by its camelCase name."""
        return await self.dispatcher.dispatch(extension_id, capability, args)

    async def search(self, extension_id: str, query: str, page: int = 1) -> InvocationResult:
        return await self.invoke(extension_id, Capability.SEARCH.value, {"query": query, "page": page})

    async def get_popular(self, extension_id: str, page: int = 1) -> InvocationResult:
        return await self.invoke(extension_id, Capability.GET_POPULAR.value, {"page": page})

    async def get_latest(self, extension_id: str, page: int = 1) -> InvocationResult:
        return await self.invoke(extension_id, Capability.GET_LATEST.value, {"page": page})

    async def get_episodes(self, extension_id: str, anime_id: str, page: int = 1) -> InvocationResult:
        return await self.invoke(extension_id, Capability.GET_EPISODES.value, {"anime_id": anime_id, "page": page})

    async def get_streams(self, extension_id: str, anime_id: str, episode_id: str) -> InvocationResult:
        return await self.invoke(
            extension_id,
            Capability.GET_STREAMS.value,
            {"anime_id": anime_id, "episode_id": episode_id},
        )

    async def get_anime_details(self, extension_id: str, anime_id: str) -> InvocationResult:
        return await self.invoke(extension_id, Capability.GET_ANIME_DETAILS.value, {"anime_id": anime_id})

    async def extract_stream(self, extension_id: str, url: str) -> InvocationResult:
        return await self.invoke(extension_id, Capability.EXTRACT_STREAM.value, {"url": url})

    async def get_hoster_info(self, extension_id: str = BUILTIN_HOSTERS_ID) -> InvocationResult:
        return await self.invoke(extension_id, Capability.GET_HOSTER_INFO.value)

    async def search_all(self, query: str, page: int = 1) -> Dict[str, InvocationResult]:
        """
        Search across all dispatchable extensions concurrently.

        Returns:
            Dictionary mapping extension ids to their invocation results
        """
        results = await self.dispatcher.gather(Capability.SEARCH.value, {"query": query, "page": page})
        succeeded = sum(1 for result in results.values() if result.success)
        logger.info(f"Search complete: {succeeded}/{len(results)} extensions answered for '{query}'")
        return results

    async def extract_from_any(self, url: str) -> Optional[InvocationResult]:
        """Try every stream extractor in registration order until one succeeds."""
        return await self.dispatcher.first_success(Capability.EXTRACT_STREAM.value, {"url": url})

    # -- housekeeping -------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        """
        Get status information for all extensions.

        Returns:
            Dictionary containing runtime and per-extension status
        """
        instances = self.dispatcher.all_instances()
        return {
            "host_version": self.host_version,
            "loaded": len(instances),
            "ready": sum(1 for i in instances if i.is_dispatchable),
            "errors": dict(self._load_errors),
            "cache": self.dispatcher.cache.stats(),
            "extensions": {i.id: i.summary().model_dump(mode="json") for i in instances},
        }

    async def cleanup(self) -> None:
        """Unload every extension."""
        extension_ids = [instance.id for instance in self.dispatcher.all_instances()]
        logger.debug(f"Cleaning up {len(extension_ids)} extensions")
        if extension_ids:
            await asyncio.gather(*(self.unload(extension_id) for extension_id in extension_ids))
        self.dispatcher.cache.clear()


# Export extension manager components
__all__ = [
    "ExtensionManager",
    "read_manifest",
    "MANIFEST_FILENAME",
]
