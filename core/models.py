from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any, List, Tuple

from core.keypath import KeyPath


class ParamSource(str, Enum):
    """Part of the request a parameter value came from."""
    QUERY = "query"
    FORM = "form"
    BODY = "body"


@dataclass(frozen=True)
class Leaf:
    """A decoded value and the key path that reached it."""
    path: KeyPath
    value: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.path.to_list(),
            "value": self.value,
        }


@dataclass(frozen=True)
class CapturedEntry:
    """One request/response exchange read from a HAR archive."""
    method: str
    url: str
    query_params: Tuple[Tuple[str, str], ...] = ()
    form_params: Tuple[Tuple[str, str], ...] = ()
    body_text: str = ""
    response_text: str = ""
    response_encoding: Optional[str] = None  # HAR content.encoding, e.g. "base64"


@dataclass
class Result:
    """Reflected values found for one entry."""
    method: str
    url: str  # query string stripped
    leaves: List[Leaf] = field(default_factory=list)

    @property
    def request(self) -> str:
        return f"{self.method} {self.url}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method": self.method,
            "url": self.url,
            "xss": [leaf.to_dict() for leaf in self.leaves],
        }
