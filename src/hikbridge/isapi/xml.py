"""Schema-less XML parsing for ISAPI bodies."""

from __future__ import annotations

import logging
from typing import Any
from xml.parsers.expat import ExpatError

import xmltodict

from hikbridge.errors import XmlParseError

logger = logging.getLogger(__name__)

TEXT_KEY = "#text"


def parse_xml(body: str) -> dict[str, Any]:
    """Parse XML into nested dicts with attributes merged alongside child elements.

    Repeated elements become lists, single elements stay scalar/dict, and
    element text that sits next to attributes is stored under `#text`.
    """
    try:
        parsed = xmltodict.parse(body, attr_prefix="", cdata_key=TEXT_KEY)
    except ExpatError as exc:
        logger.debug("XML parse error: %s", body[:500])
        raise XmlParseError(f"Failed to parse XML response: {exc}", cause=exc) from exc
    return dict(parsed) if parsed is not None else {}


def text_of(value: Any) -> str | None:
    """Return element text whether the node parsed as a scalar or an attribute map."""
    if value is None:
        return None
    if isinstance(value, dict):
        inner = value.get(TEXT_KEY)
        return inner.strip() if isinstance(inner, str) else None
    if isinstance(value, list):
        return text_of(value[0]) if value else None
    return str(value).strip()


def as_list(value: Any) -> list[Any]:
    """Normalize a node that may be missing, single, or repeated into a list."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def deep_get(data: Any, *keys: str) -> Any:
    """Walk nested dicts, returning None as soon as a key is missing."""
    current = data
    for key in keys:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
        if current is None:
            return None
    return current
