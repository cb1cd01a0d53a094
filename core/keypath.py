import json
from dataclasses import dataclass
from typing import List, Tuple, Union

Segment = Union[str, int]


@dataclass(frozen=True)
class KeyPath:
    """Where a value was found inside a request parameter.

    The first segment names the parameter source (query, form, body); the
    rest are object keys (str) or array indices (int).
    """
    segments: Tuple[Segment, ...]

    @classmethod
    def root(cls, *segments: Segment) -> 'KeyPath':
        return cls(tuple(segments))

    def child(self, segment: Segment) -> 'KeyPath':
        return KeyPath(self.segments + (segment,))

    def format(self) -> str:
        """Render as query["redirect"] or body["items"][2]["name"]."""
        if not self.segments:
            return ""
        head, *rest = self.segments
        return str(head) + "".join(json.dumps([s], ensure_ascii=False) for s in rest)

    def to_list(self) -> List[Segment]:
        """Segments as a JSON-serializable list."""
        return list(self.segments)

    def __str__(self) -> str:
        return self.format()
