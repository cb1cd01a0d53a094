from typing import Iterable, List

from core.models import Leaf


class ReflectionDetector:
    """Finds decoded request values that appear verbatim in a response body."""

    def match(self, leaves: Iterable[Leaf], body: str) -> List[Leaf]:
        if not body:
            return []
        return [leaf for leaf in leaves if self.is_reflected(leaf, body)]

    def is_reflected(self, leaf: Leaf, body: str) -> bool:
        # Empty values are contained in any text and signal nothing
        return bool(leaf.value) and leaf.value in body
