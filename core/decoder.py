"""
Recursive value decoder.

Unwraps a request parameter value through any mix of JSON and base64
layers and yields every value found on the way, each tagged with the
key path that reached it.
"""

import base64
import binascii
import json
import logging
from typing import Iterator, List, Optional, Tuple

from core.keypath import KeyPath, Segment
from core.models import Leaf

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 32

_JSON_WHITESPACE = " \t\n\r"
_json_decoder = json.JSONDecoder()


def decode(path: KeyPath, value: str, require_printable: bool = True,
           max_depth: int = DEFAULT_MAX_DEPTH) -> Iterator[Leaf]:
    """
    Yield a Leaf for value and for everything nested inside it.

    The value itself is always yielded. Then, independently:
      - a JSON object descends into each key (path + key)
      - a JSON array descends into each element (path + index)
      - a JSON string descends into its unquoted content (same path)
      - base64 descends into the decoded text (same path)

    A candidate equal to the value it came from is not visited again,
    and descent stops after max_depth nested steps.

    Args:
        path: Key path of value
        value: Raw parameter text
        require_printable: Reject base64 payloads that are not printable UTF-8 text
        max_depth: Maximum number of nested interpretation steps
    """
    stack: List[Tuple[KeyPath, str, int]] = [(path, value, 0)]

    while stack:
        current_path, current, depth = stack.pop()
        yield Leaf(current_path, current)

        if depth >= max_depth:
            logger.debug(f"Depth limit reached at {current_path}")
            continue

        children = [
            (child_path, child)
            for child_path, child in _interpret(current_path, current, require_printable)
            if not (child_path == current_path and child == current)
        ]
        # Reversed so children come out in document order
        for child_path, child in reversed(children):
            stack.append((child_path, child, depth + 1))


def _interpret(path: KeyPath, value: str, require_printable: bool) -> Iterator[Tuple[KeyPath, str]]:
    parsed = _parse_json(value)
    if isinstance(parsed, dict):
        # Duplicate keys: last one wins, as in json.loads
        for key, raw in dict(_raw_members(value, "{")).items():
            yield path.child(key), raw
    elif isinstance(parsed, list):
        for index, raw in _raw_members(value, "["):
            yield path.child(index), raw
    elif isinstance(parsed, str):
        yield path, parsed

    text = decode_base64_text(value, require_printable)
    if text is not None:
        yield path, text


def _parse_json(value: str):
    try:
        return json.loads(value)
    except ValueError:
        return None
    except RecursionError:
        logger.debug("JSON value nested too deeply, skipping")
        return None


def _skip_whitespace(text: str, index: int) -> int:
    while index < len(text) and text[index] in _JSON_WHITESPACE:
        index += 1
    return index


def _raw_members(text: str, opening: str) -> List[Tuple[Segment, str]]:
    """
    Source text of each member of a JSON object or array.

    text must already be known to be valid JSON starting with opening.
    Members are (key, raw value) for objects and (index, raw element)
    for arrays; the raw text is sliced from text, so numbers and escapes
    keep their original spelling.
    """
    closing = "}" if opening == "{" else "]"
    members = []
    index = _skip_whitespace(text, _skip_whitespace(text, 0) + 1)
    if text[index] == closing:
        return members

    while True:
        if opening == "{":
            key, index = _json_decoder.raw_decode(text, index)
            index = _skip_whitespace(text, _skip_whitespace(text, index) + 1)  # past ':'
        else:
            key = len(members)
        _, end = _json_decoder.raw_decode(text, index)
        members.append((key, text[index:end]))

        index = _skip_whitespace(text, end)
        if text[index] == closing:
            return members
        index = _skip_whitespace(text, index + 1)  # past ','


def decode_base64_text(value: str, require_printable: bool = True) -> Optional[str]:
    """
    Decode standard (padded) base64 to text. CR and LF are ignored.

    Returns None when value is not valid base64, decodes to nothing, or
    (with require_printable) is not printable UTF-8.
    """
    try:
        data = base64.b64decode(_strip_newlines(value).encode("ascii"), validate=True)
    except (UnicodeEncodeError, binascii.Error, ValueError):
        return None
    if not data:
        return None

    if not require_printable:
        return data.decode("utf-8", errors="replace")

    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return None
    if not text.isprintable():
        return None
    return text


def _strip_newlines(value: str) -> str:
    # Line-wrapped base64 (MIME style) decodes the same as unwrapped
    return value.replace("\r", "").replace("\n", "")
