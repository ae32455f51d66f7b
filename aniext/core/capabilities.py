"""
Capability Registry - Static table of host-defined extension operations.

This module defines every capability an extension may advertise together
with its call signature. The table is consulted by the manifest validator
(unknown capability names are rejected) and by the dispatcher (arguments
are bound and checked before any backend is touched).
"""

from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple

from aniext.core.exceptions import ValidationError


class Capability(str, Enum):
    """Named operations an extension can implement."""

    SEARCH = "search"
    GET_POPULAR = "getPopular"
    GET_LATEST = "getLatest"
    GET_EPISODES = "getEpisodes"
    GET_STREAMS = "getStreams"
    GET_ANIME_DETAILS = "getAnimeDetails"
    EXTRACT_STREAM = "extractStream"
    GET_HOSTER_INFO = "getHosterInfo"
    DECRYPT_STREAM = "decryptStream"
    GET_DOWNLOAD_LINK = "getDownloadLink"

    def __str__(self) -> str:
        return self.value


class ResultShape(str, Enum):
    """What a capability returns, used to normalize results."""

    LISTING = "listing"
    EPISODES = "episodes"
    STREAMS = "streams"
    STREAM = "stream"
    DETAILS = "details"
    INFO = "info"
    TEXT = "text"


class ParamSpec(NamedTuple):
    """A single capability parameter."""

    name: str
    wire_name: str
    type: type
    required: bool = True
    default: Any = None


class CapabilitySpec(NamedTuple):
    """Signature and metadata for one capability."""

    capability: Capability
    python_name: str
    bit: int
    params: Tuple[ParamSpec, ...]
    returns: ResultShape
    network: bool = True

    @property
    def name(self) -> str:
        return self.capability.value

    @property
    def param_names(self) -> Tuple[str, ...]:
        return tuple(p.name for p in self.params)


_QUERY = ParamSpec("query", "query", str)
_PAGE = ParamSpec("page", "page", int, required=False, default=1)
_ANIME_ID = ParamSpec("anime_id", "animeId", str)
_EPISODE_ID = ParamSpec("episode_id", "episodeId", str)
_URL = ParamSpec("url", "url", str)
_DATA = ParamSpec("data", "data", str)


CAPABILITY_REGISTRY: Mapping[Capability, CapabilitySpec] = MappingProxyType({
    spec.capability: spec
    for spec in (
        CapabilitySpec(Capability.SEARCH, "search", 1 << 0, (_QUERY, _PAGE), ResultShape.LISTING),
        CapabilitySpec(Capability.GET_POPULAR, "get_popular", 1 << 1, (_PAGE,), ResultShape.LISTING),
        CapabilitySpec(Capability.GET_LATEST, "get_latest", 1 << 2, (_PAGE,), ResultShape.LISTING),
        CapabilitySpec(Capability.GET_EPISODES, "get_episodes", 1 << 3, (_ANIME_ID, _PAGE), ResultShape.EPISODES),
        CapabilitySpec(Capability.GET_STREAMS, "get_streams", 1 << 4, (_ANIME_ID, _EPISODE_ID), ResultShape.STREAMS),
        CapabilitySpec(Capability.GET_ANIME_DETAILS, "get_anime_details", 1 << 5, (_ANIME_ID,), ResultShape.DETAILS),
        CapabilitySpec(Capability.EXTRACT_STREAM, "extract_stream", 1 << 8, (_URL,), ResultShape.STREAM),
        CapabilitySpec(Capability.GET_HOSTER_INFO, "get_hoster_info", 1 << 9, (), ResultShape.INFO, network=False),
        CapabilitySpec(Capability.DECRYPT_STREAM, "decrypt_stream", 1 << 10, (_DATA,), ResultShape.TEXT, network=False),
        CapabilitySpec(Capability.GET_DOWNLOAD_LINK, "get_download_link", 1 << 11, (_URL,), ResultShape.TEXT),
    )
})


def get_capability(name: str) -> Optional[CapabilitySpec]:
    """
    Look up a capability by its manifest name.

    Args:
        name: camelCase capability name as written in manifests

    Returns:
        The capability spec, or None when the name is not registered
    """
    try:
        return CAPABILITY_REGISTRY[Capability(name)]
    except ValueError:
        return None


def is_registered(name: str) -> bool:
    """Check whether a capability name is known to the host."""
    return get_capability(name) is not None


def require_capability(name: str) -> CapabilitySpec:
    """Look up a capability, raising ValidationError for unknown names."""
    spec = get_capability(name)
    if spec is None:
        raise ValidationError(f"Unknown capability: {name}", field_name="capabilities", invalid_value=name)
    return spec


def bind_arguments(spec: CapabilitySpec, args: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Bind call arguments to a capability signature.

    Unknown arguments are rejected, defaults are applied and types are
    checked so that two equivalent calls always produce the same mapping.

    Args:
        spec: Capability being invoked
        args: Raw keyword arguments from the caller

    Returns:
        Arguments in signature order with defaults filled in

    Raises:
        ValidationError: If an argument is missing, unknown or mistyped
    """
    if args is not None and not isinstance(args, Mapping):
        raise ValidationError(
            f"Arguments for {spec.name} must be a mapping, got {type(args).__name__}",
            field_name="args",
            invalid_value=args,
        )
    args = dict(args or {})
    unknown = set(args) - set(spec.param_names)
    if unknown:
        name = sorted(unknown)[0]
        raise ValidationError(
            f"Unexpected argument '{name}' for {spec.name}",
            field_name=name,
            invalid_value=args[name],
        )

    bound: Dict[str, Any] = {}
    for param in spec.params:
        if param.name not in args or args[param.name] is None:
            if param.required:
                raise ValidationError(
                    f"Missing required argument '{param.name}' for {spec.name}",
                    field_name=param.name,
                )
            bound[param.name] = param.default
            continue

        value = args[param.name]
        # bool is an int subclass but never a valid page number
        if not isinstance(value, param.type) or isinstance(value, bool):
            raise ValidationError(
                f"Argument '{param.name}' for {spec.name} must be {param.type.__name__}",
                field_name=param.name,
                invalid_value=value,
            )
        bound[param.name] = value

    return bound


def to_wire(spec: CapabilitySpec, bound: Dict[str, Any]) -> Dict[str, Any]:
    """Convert bound arguments to the camelCase keys used on binary ABIs."""
    return {param.wire_name: bound[param.name] for param in spec.params}


def capability_mask(names: Iterable[str]) -> int:
    """Fold capability names into the bit mask used by native libraries."""
    mask = 0
    for name in names:
        mask |= require_capability(name).bit
    return mask


def capabilities_from_mask(mask: int) -> List[Capability]:
    """Expand a native capability bit mask back into capabilities."""
    return [spec.capability for spec in CAPABILITY_REGISTRY.values() if mask & spec.bit]


# Export registry components
__all__ = [
    "Capability",
    "ResultShape",
    "ParamSpec",
    "CapabilitySpec",
    "CAPABILITY_REGISTRY",
    "get_capability",
    "is_registered",
    "require_capability",
    "bind_arguments",
    "to_wire",
    "capability_mask",
    "capabilities_from_mask",
]
