from __future__ import annotations

from collections.abc import Mapping, Sequence
import urllib.parse

IDENTITY_PARAM_NAMES: tuple[str, ...] = ("user_id", "userId", "uid")


def resolve_identity(
    source: Mapping[str, str | Sequence[str] | None] | str | None,
) -> str | None:
    """Return the user identity carried by ``source``, or None.

    ``source`` may be a mapping of query parameters (single values or lists as
    produced by ``urllib.parse.parse_qs``), a raw query string, or a full URL.
    The first non-blank value among ``IDENTITY_PARAM_NAMES`` wins.
    """
    if source is None:
        return None
    params = _params_from_string(source) if isinstance(source, str) else source

    for name in IDENTITY_PARAM_NAMES:
        value = _first_value(params.get(name))
        if value:
            return value
    return None


def _params_from_string(raw: str) -> dict[str, list[str]]:
    parsed = urllib.parse.urlparse(raw)
    query = parsed.query if (parsed.scheme or "?" in raw) else raw.lstrip("?")
    return urllib.parse.parse_qs(query)


def _first_value(value: str | Sequence[str] | None) -> str | None:
    if value is None:
        return None
    candidates = [value] if isinstance(value, str) else list(value)
    for candidate in candidates:
        stripped = str(candidate).strip()
        if stripped:
            return stripped
    return None
