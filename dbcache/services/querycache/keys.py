"""Cache key derivation for per-identifier caching."""

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable

_INTEGER = re.compile(r"-?\d+")
_NUMBER = re.compile(r"-?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?")


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="backslashreplace")
    return str(value)


def is_numeric(value: Any, strict: bool = True) -> bool:
    """Check whether an identifier is a number.

    Strict accepts integers and strings of digits with an optional leading
    minus. Loose also accepts floats and decimal/exponent strings.
    Booleans are never numeric.
    """
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    if isinstance(value, float):
        return not strict and value == value  # NaN is not an identifier
    if isinstance(value, (str, bytes)):
        pattern = _INTEGER if strict else _NUMBER
        return pattern.fullmatch(_text(value)) is not None
    return False


def identifier_token(value: Any, numeric: bool = False) -> str:
    """String form used both for the cache key and for matching rows to identifiers.

    With ``numeric`` integer-like values are canonicalised, so ``"01"``, ``"1"``
    and ``1`` share the token ``"1"``.
    """
    if numeric and is_numeric(value, strict=True):
        return str(int(_text(value)))
    return _text(value)


@dataclass(frozen=True)
class KeyedIdentifier:
    """A lookup identifier and the cache key it addresses."""
    identifier: Any
    cache_key: str


def derive_cache_keys(identifiers: Iterable[Any], prefix: str,
                      numeric_only: bool = False) -> Dict[str, KeyedIdentifier]:
    """Map each surviving identifier's token to its key ``prefix + token``.

    With ``numeric_only`` identifiers failing the strict numeric check are
    dropped and the rest are keyed by their canonical integer form. Identifiers
    with the same token collapse onto the first one seen.
    """
    keyed: Dict[str, KeyedIdentifier] = {}
    for value in identifiers:
        if value is None or (numeric_only and not is_numeric(value, strict=True)):
            continue
        token = identifier_token(value, numeric_only)
        if token not in keyed:
            keyed[token] = KeyedIdentifier(identifier=value, cache_key=f"{prefix}{token}")
    return keyed


def versioned_key(cache_key: str, token: str) -> str:
    """Effective list key for a version token."""
    return f"{cache_key}_{token}"
