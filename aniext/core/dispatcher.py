"""
Capability Dispatcher - Routes capability calls to loaded extensions.

The dispatcher is the only path from a caller to a backend adapter. A
call is refused before reaching any backend unless the target instance
is ready and enabled, the capability is registered and advertised, and
the arguments bind to the capability's signature. Accepted calls go
through the extraction cache, and every outcome, success or failure,
comes back as an InvocationResult: dispatch never raises.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from aniext.core.cache import CachePolicy, ExtractionCache, make_key
from aniext.core.capabilities import CapabilitySpec, ResultShape, bind_arguments, get_capability
from aniext.core.exceptions import (
    AniExtError,
    ExtensionNotFound,
    ExtensionUnavailable,
    InvocationError,
    PermissionDenied,
)
from aniext.core.instance import ExtensionInstance
from aniext.core.models import ExtensionKind, InvocationResult, StreamDescriptor


logger = logging.getLogger(__name__)


def normalize_result(instance_id: str, capability: CapabilitySpec, raw: Any) -> Any:
    """
    Coerce stream-returning capabilities into StreamDescriptor objects.

    Raises:
        InvocationError: If the extension returned something unusable
    """
    try:
        if capability.returns == ResultShape.STREAM:
            if raw is None or isinstance(raw, StreamDescriptor):
                return raw
            if isinstance(raw, dict):
                return StreamDescriptor.from_raw(raw)
        elif capability.returns == ResultShape.STREAMS:
            if raw is None:
                return []
            if isinstance(raw, list):
                return [item if isinstance(item, StreamDescriptor) else StreamDescriptor.from_raw(item) for item in raw]
        else:
            return raw
    except (PydanticValidationError, ValueError, TypeError, AttributeError) as e:
        raise InvocationError(
            f"{capability.name} returned an invalid stream descriptor: {e}",
            extension_id=instance_id,
            capability=capability.name,
        )

    raise InvocationError(
        f"{capability.name} returned {type(raw).__name__}, expected stream data",
        extension_id=instance_id,
        capability=capability.name,
    )


class Dispatcher:
    """
    Registry of loaded instances and gatekeeper for capability calls.

    Instances are kept in registration order, which is also the order
    used by fan-out calls.
    """

    def __init__(
        self,
        cache: Optional[ExtractionCache] = None,
        policy: Optional[CachePolicy] = None,
        max_concurrent: int = 5,
        call_timeout: Optional[float] = None,
    ):
        """
        Initialize the dispatcher.

        Args:
            cache: Result cache (a private one is created when omitted)
            policy: TTL policy for cached results
            max_concurrent: Concurrency bound for fan-out gathers
            call_timeout: Per-call timeout in seconds, None for no limit
        """
        self.cache = cache or ExtractionCache()
        self.policy = policy or CachePolicy()
        self.max_concurrent = max_concurrent
        self.call_timeout = call_timeout
        self._instances: Dict[str, ExtensionInstance] = {}

    # -- registry -----------------------------------------------------------

    def register(self, instance: ExtensionInstance) -> None:
        self._instances[instance.id] = instance
        logger.debug(f"Registered {instance.id} for {', '.join(c.value for c in instance.manifest.advertised)}")

    def unregister(self, extension_id: str) -> Optional[ExtensionInstance]:
        instance = self._instances.pop(extension_id, None)
        if instance is not None:
            self.cache.clear(extension_id)
        return instance

    def get(self, extension_id: str) -> Optional[ExtensionInstance]:
        return self._instances.get(extension_id)

    def all_instances(self) -> List[ExtensionInstance]:
        return list(self._instances.values())

    def instances(
        self,
        capability: Optional[str] = None,
        kind: Optional[ExtensionKind] = None,
    ) -> List[ExtensionInstance]:
        """Dispatchable instances, optionally filtered by capability and kind."""
        if kind is not None:
            try:
                kind = ExtensionKind(kind)
            except ValueError:
                logger.debug(f"No extension can match unknown kind '{kind}'")
                return []

        selected = []
        for instance in self._instances.values():
            if not instance.is_dispatchable:
                continue
            if capability is not None and not instance.manifest.advertises(capability):
                continue
            if kind is not None and instance.manifest.kind != kind:
                continue
            selected.append(instance)
        return selected

    # -- dispatch -----------------------------------------------------------

    def _admit(self, extension_id: str, capability: str, args: Optional[Dict[str, Any]]):
        instance = self._instances.get(extension_id)
        if instance is None:
            raise ExtensionNotFound(f"No extension loaded with id '{extension_id}'", extension_id=extension_id)
        if not instance.is_ready:
            raise ExtensionUnavailable(
                f"Extension '{extension_id}' is {instance.state.value}",
                extension_id=extension_id,
                state=instance.state.value,
            )
        if not instance.enabled:
            raise ExtensionUnavailable(f"Extension '{extension_id}' is disabled", extension_id=extension_id, state="disabled")

        spec = get_capability(capability)
        if spec is None or not instance.manifest.advertises(spec.name):
            raise PermissionDenied(
                f"Extension '{extension_id}' does not advertise capability '{capability}'",
                extension_id=extension_id,
                target=capability,
            )
        return instance, spec, bind_arguments(spec, args)

    async def _call_backend(self, instance: ExtensionInstance, spec: CapabilitySpec, bound: Dict[str, Any]) -> Any:
        instance.calls += 1
        call = instance.backend.invoke(instance.handle, spec, bound)
        if self.call_timeout:
            try:
                raw = await asyncio.wait_for(call, timeout=self.call_timeout)
            except asyncio.TimeoutError:
                raise InvocationError(
                    f"{spec.name} timed out after {self.call_timeout}s",
                    extension_id=instance.id,
                    capability=spec.name,
                )
        else:
            raw = await call

        # Results from an instance that is going away are discarded
        if not instance.is_ready:
            raise ExtensionUnavailable(
                f"Extension '{instance.id}' shut down during {spec.name}",
                extension_id=instance.id,
                state=instance.state.value,
            )
        return normalize_result(instance.id, spec, raw)

    async def dispatch(
        self,
        extension_id: str,
        capability: str,
        args: Optional[Dict[str, Any]] = None,
    ) -> InvocationResult:
        """
        Invoke a capability on one extension.

        Args:
            extension_id: Target extension
            capability: camelCase capability name
            args: Keyword arguments for the capability

        Returns:
            InvocationResult describing the value or the failure
        """
        capability = str(capability)
        try:
            instance, spec, bound = self._admit(extension_id, capability, args)
        except AniExtError as e:
            logger.info(f"Refused {extension_id}.{capability}: {e}")
            return InvocationResult.failed(extension_id, capability, e)

        key = make_key(instance.id, spec.name, bound)
        ttl = self.policy.ttl_for(spec, bound)
        try:
            value, cached = await self.cache.get_or_fetch(
                key,
                ttl,
                lambda: self._call_backend(instance, spec, bound),
                store_if=lambda _value: instance.is_ready,
            )
        except AniExtError as e:
            instance.last_error = str(e)
            logger.warning(f"{extension_id}.{spec.name} failed: {e}")
            return InvocationResult.failed(extension_id, spec.name, e)
        except Exception as e:
            instance.last_error = str(e)
            logger.exception(f"Unexpected error dispatching {extension_id}.{spec.name}")
            return InvocationResult.failed(extension_id, spec.name, e)

        return InvocationResult.ok(extension_id, spec.name, value, cached=cached)

    # -- fan-out ------------------------------------------------------------

    async def first_success(
        self,
        capability: str,
        args: Optional[Dict[str, Any]] = None,
        kind: Optional[ExtensionKind] = None,
        ids: Optional[Iterable[str]] = None,
    ) -> Optional[InvocationResult]:
        """
        Try instances one at a time until one returns a non-empty value.

        Returns:
            The first successful result, or None when every candidate fails
        """
        candidates = self._candidates(capability, kind, ids)
        for instance in candidates:
            result = await self.dispatch(instance.id, capability, args)
            if result.has_value:
                return result
            logger.debug(f"{instance.id} gave no {capability} result, trying next")
        return None

    async def gather(
        self,
        capability: str,
        args: Optional[Dict[str, Any]] = None,
        kind: Optional[ExtensionKind] = None,
        ids: Optional[Iterable[str]] = None,
    ) -> Dict[str, InvocationResult]:
        """Call every matching instance concurrently under the concurrency bound."""
        candidates = self._candidates(capability, kind, ids)
        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def call(instance: ExtensionInstance) -> InvocationResult:
            async with semaphore:
                return await self.dispatch(instance.id, capability, args)

        results = await asyncio.gather(*(call(instance) for instance in candidates))
        return {result.extension_id: result for result in results}

    def _candidates(
        self,
        capability: str,
        kind: Optional[ExtensionKind],
        ids: Optional[Iterable[str]],
    ) -> List[ExtensionInstance]:
        candidates = self.instances(capability=capability, kind=kind)
        if ids is not None:
            wanted = list(ids)
            by_id = {instance.id: instance for instance in candidates}
            candidates = [by_id[i] for i in wanted if i in by_id]
        return candidates


# Export dispatcher components
__all__ = [
    "Dispatcher",
    "normalize_result",
]
