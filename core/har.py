"""
HAR archive loading.

Turns a HAR document into CapturedEntry objects. Anything that does not
match the expected schema raises ArchiveError naming the source.
"""

import json
import logging
from typing import IO, Any, List, Optional, Tuple

from core.error_handling import ArchiveError
from core.models import CapturedEntry

logger = logging.getLogger(__name__)


def load_archive(stream: IO, source: str = "<stdin>") -> List[CapturedEntry]:
    """Parse a HAR document from a text stream."""
    try:
        document = json.load(stream)
    except ValueError as e:
        raise ArchiveError(f"invalid JSON: {e}", source)
    except RecursionError:
        raise ArchiveError("JSON nested too deeply", source)
    return parse_archive(document, source)


def parse_archive(document: Any, source: str = "<stdin>") -> List[CapturedEntry]:
    """Build entries from an already-decoded HAR document."""
    har_log = _field(document, "log", dict, source, "document")
    if har_log is None:
        raise ArchiveError("missing 'log' object", source)
    raw_entries = _field(har_log, "entries", list, source, "log") or []

    entries = []
    for index, raw in enumerate(raw_entries):
        where = f"log.entries[{index}]"
        if not isinstance(raw, dict):
            raise ArchiveError(f"{where}: expected an object", source)
        entries.append(_parse_entry(raw, source, where))

    logger.debug(f"{source}: loaded {len(entries)} entries")
    return entries


def _parse_entry(raw: dict, source: str, where: str) -> CapturedEntry:
    request = _field(raw, "request", dict, source, where) or {}
    request_where = f"{where}.request"

    post_data = _field(request, "postData", dict, source, request_where) or {}
    post_where = f"{request_where}.postData"

    response = _field(raw, "response", dict, source, where) or {}
    content = _field(response, "content", dict, source, f"{where}.response") or {}
    content_where = f"{where}.response.content"

    return CapturedEntry(
        method=_field(request, "method", str, source, request_where) or "",
        url=_field(request, "url", str, source, request_where) or "",
        query_params=_params(request, "queryString", source, request_where),
        form_params=_params(post_data, "params", source, post_where),
        body_text=_field(post_data, "text", str, source, post_where) or "",
        response_text=_field(content, "text", str, source, content_where) or "",
        response_encoding=_field(content, "encoding", str, source, content_where),
    )


def _params(container: dict, name: str, source: str, where: str) -> Tuple[Tuple[str, str], ...]:
    items = _field(container, name, list, source, where) or []
    params = []
    for index, item in enumerate(items):
        item_where = f"{where}.{name}[{index}]"
        if not isinstance(item, dict):
            raise ArchiveError(f"{item_where}: expected an object", source)
        params.append((
            _field(item, "name", str, source, item_where) or "",
            _field(item, "value", str, source, item_where) or "",
        ))
    return tuple(params)


def _field(container: Any, name: str, expected: type, source: str, where: str) -> Optional[Any]:
    # Missing or null fields read as None; present fields must have the right type
    if not isinstance(container, dict):
        raise ArchiveError(f"{where}: expected an object", source)
    value = container.get(name)
    if value is None:
        return None
    if not isinstance(value, expected):
        raise ArchiveError(
            f"{where}.{name}: expected {expected.__name__}, got {type(value).__name__}",
            source,
        )
    return value
