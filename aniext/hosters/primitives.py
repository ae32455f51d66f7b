"""
Decode Primitives - Reusable string transforms for obfuscated payloads.

Hoster pages hide their media URLs behind layers of simple encodings.
Each primitive here is pure and raises DecodeError on malformed input so
an extraction pipeline can abort as a whole instead of emitting a
half-decoded URL.
"""

import base64
import binascii
import codecs
import re
from typing import Iterable, Optional

from aniext.core.exceptions import DecodeError


def rot13(text: str) -> str:
    """Rotate ASCII letters by 13 places; other characters are untouched."""
    return codecs.encode(text, "rot_13")


def b64decode(text: str) -> str:
    """
    Decode base64 into a string, tolerating missing padding.

    Bytes map one-to-one onto code points (latin-1), matching how browser
    ``atob`` feeds the next stage of a pipeline.
    """
    cleaned = re.sub(r'\s+', '', text or "")
    if not cleaned:
        raise DecodeError("Empty base64 input", stage="base64")
    cleaned += "=" * (-len(cleaned) % 4)
    try:
        return base64.b64decode(cleaned, validate=True).decode("latin-1")
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Invalid base64: {e}", stage="base64")


def b64encode(text: str) -> str:
    """Encode a latin-1 string as base64."""
    try:
        return base64.b64encode(text.encode("latin-1")).decode("ascii")
    except UnicodeEncodeError as e:
        raise DecodeError(f"Cannot base64-encode non-latin-1 text: {e}", stage="base64")


def shift_chars(text: str, offset: int) -> str:
    """Shift every character's code point by a constant offset."""
    try:
        return "".join(chr(ord(ch) + offset) for ch in text)
    except ValueError as e:
        raise DecodeError(f"Character shift out of range: {e}", stage="shift")


def reverse(text: str) -> str:
    return text[::-1]


def swapcase(text: str) -> str:
    return text.swapcase()


def hex_to_chars(text: str) -> str:
    """Convert a string of hex pairs into the characters they encode."""
    if len(text) % 2:
        raise DecodeError("Hex string has odd length", stage="hex")
    try:
        return bytes.fromhex(text).decode("latin-1")
    except ValueError as e:
        raise DecodeError(f"Invalid hex string: {e}", stage="hex")


def chars_to_hex(text: str) -> str:
    """Inverse of :func:`hex_to_chars`."""
    try:
        return text.encode("latin-1").hex()
    except UnicodeEncodeError as e:
        raise DecodeError(f"Cannot hex-encode non-latin-1 text: {e}", stage="hex")


def strip_tokens(text: str, tokens: Iterable[str], placeholder: str = "_") -> str:
    """
    Reduce a token-salted string to normal form.

    Every obfuscation token is first collapsed into a placeholder, then
    all placeholders are removed.
    """
    for token in tokens:
        text = text.replace(token, placeholder)
    return text.replace(placeholder, "")


# P.A.C.K.E.R (Dean Edwards) packed scripts:
# eval(function(p,a,c,k,e,d){...}('payload',base,count,'w0|w1|...'.split('|'),0,{}))
PACKED_PATTERN = re.compile(
    r"eval\(function\(p,a,c,k,e,[dr]\).*?\}\s*\(\s*"
    r"'((?:[^'\\]|\\.)*)'\s*,\s*(\d+)\s*,\s*(\d+)\s*,\s*"
    r"'((?:[^'\\]|\\.)*)'\.split\('\|'\)",
    re.DOTALL,
)


def is_packed(source: str) -> bool:
    """Detect the packed-script marker."""
    return bool(PACKED_PATTERN.search(source or ""))


def encode_base_n(number: int, base: int) -> str:
    """
    Encode an integer the way the packer names its tokens.

    Digits below 36 use ``0-9a-z``; larger digits continue from ``A``
    (code point ``digit + 29``), which covers bases up to 62 with the
    ``0-9a-zA-Z`` alphabet and extends past it for base 95 payloads.
    """
    if base < 2:
        raise DecodeError(f"Invalid packer base: {base}", stage="unpack")

    def digit(value: int) -> str:
        if value < 36:
            return "0123456789abcdefghijklmnopqrstuvwxyz"[value]
        return chr(value + 29)

    prefix = encode_base_n(number // base, base) if number >= base else ""
    return prefix + digit(number % base)


def unpack_packed(source: str) -> str:
    """
    Reconstruct the original script from a packed one.

    Tokens are substituted from the highest index down so that a short
    token never clobbers part of a longer one before it is replaced.

    Raises:
        DecodeError: If no packed script is present or its parameters are bad
    """
    match = PACKED_PATTERN.search(source or "")
    if not match:
        raise DecodeError("No packed script found", stage="unpack")

    payload, base, count, dictionary = match.groups()
    base, count = int(base), int(count)
    if base < 2 or count < 0:
        raise DecodeError(f"Invalid packer parameters (base={base}, count={count})", stage="unpack")

    payload = payload.replace("\\\\", "\\").replace("\\'", "'")
    words = dictionary.split("|")

    for index in range(count - 1, -1, -1):
        if index < len(words) and words[index]:
            token = encode_base_n(index, base)
            payload = re.sub(r'\b' + re.escape(token) + r'\b', lambda _m, w=words[index]: w, payload)

    return payload


def try_unpack(source: str) -> Optional[str]:
    """Unpack when a packed script is present, otherwise return None."""
    try:
        return unpack_packed(source)
    except DecodeError:
        return None


# Export primitives
__all__ = [
    "rot13",
    "b64decode",
    "b64encode",
    "shift_chars",
    "reverse",
    "swapcase",
    "hex_to_chars",
    "chars_to_hex",
    "strip_tokens",
    "is_packed",
    "encode_base_n",
    "unpack_packed",
    "try_unpack",
    "PACKED_PATTERN",
]
