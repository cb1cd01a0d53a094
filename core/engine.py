import base64
import binascii
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Iterator, List, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

from core.config import AnalysisConfig
from core.decoder import decode
from core.error_handling import InvalidURLError
from core.keypath import KeyPath
from core.models import CapturedEntry, Leaf, ParamSource, Result
from detectors.reflection import ReflectionDetector

logger = logging.getLogger(__name__)


def strip_query(url: str) -> str:
    """Drop the query string from url, keeping everything else."""
    try:
        split = urlsplit(url)
        split.port  # raises on a malformed port
    except ValueError as e:
        raise InvalidURLError(f"cannot parse URL {url!r}: {e}")
    return urlunsplit((split.scheme, split.netloc, split.path, "", split.fragment))


def request_host(url: str) -> str:
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError as e:
        raise InvalidURLError(f"cannot parse URL {url!r}: {e}")


def decode_response_body(entry: CapturedEntry, mode: str = "base64") -> str:
    """
    Undo the HAR transport encoding of a response body.

    In "base64" mode every body is decoded once; in "auto" mode only bodies
    whose content.encoding is base64. A body that is not valid base64 is
    used as-is.
    """
    text = entry.response_text
    if not text:
        return ""
    flagged = (entry.response_encoding or "").lower() == "base64"
    if mode == "auto" and not flagged:
        return text
    try:
        data = base64.b64decode("".join(text.split()), validate=True)
    except (binascii.Error, ValueError):
        log = logger.warning if flagged else logger.debug
        log(f"Response body of {entry.method} {entry.url} is not valid base64, using it as-is")
        return text
    return data.decode("utf-8", errors="replace")


class Correlator:
    """Decodes request parameters of captured entries and matches them against responses."""

    def __init__(self, config: Optional[AnalysisConfig] = None, match_mode: bool = False):
        self.config = config or AnalysisConfig()
        self.match_mode = match_mode
        self.require_printable = self.config.require_printable(match_mode)
        self.allowed_hosts = {host.lower() for host in self.config.allowed_hosts}
        self.reflection = ReflectionDetector()

    def iter_leaves(self, entry: CapturedEntry) -> Iterator[Leaf]:
        """Lazily decode every query param, form param and the raw body of entry."""
        for name, value in entry.query_params:
            yield from self._decode(KeyPath.root(ParamSource.QUERY.value, name), value)
        for name, value in entry.form_params:
            yield from self._decode(KeyPath.root(ParamSource.FORM.value, name), value)
        if entry.body_text:
            yield from self._decode(KeyPath.root(ParamSource.BODY.value), entry.body_text)

    def collect_leaves(self, entry: CapturedEntry) -> List[Leaf]:
        """Union of all leaves of entry, first-seen order."""
        return list(dict.fromkeys(self.iter_leaves(entry)))

    def iter_dump(self, entries: Iterable[CapturedEntry]) -> Iterator[Tuple[str, Leaf]]:
        """Yield (request, leaf) for every decoded value of every entry."""
        for entry in entries:
            request = f"{entry.method} {strip_query(entry.url)}"
            for leaf in self.iter_leaves(entry):
                yield request, leaf

    def host_allowed(self, entry: CapturedEntry) -> bool:
        if not self.allowed_hosts:
            return True
        return request_host(entry.url) in self.allowed_hosts

    def analyze_entry(self, entry: CapturedEntry) -> Optional[Result]:
        """Result for entry, or None when its host is filtered out."""
        url = strip_query(entry.url)
        if not self.host_allowed(entry):
            logger.debug(f"Skipping {entry.method} {url}: host not allowed")
            return None

        body = decode_response_body(entry, self.config.response_encoding)
        reflected = self.reflection.match(self.collect_leaves(entry), body)
        if reflected:
            logger.debug(f"{entry.method} {url}: {len(reflected)} reflected values")
        return Result(method=entry.method, url=url, leaves=reflected)

    def correlate(self, entries: List[CapturedEntry]) -> List[Result]:
        """Analyze entries in input order, dropping host-filtered ones."""
        if self.config.enable_concurrent and len(entries) > 1:
            with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
                results = list(executor.map(self.analyze_entry, entries))
        else:
            results = [self.analyze_entry(entry) for entry in entries]

        results = [result for result in results if result is not None]
        logger.info(
            f"Analyzed {len(results)}/{len(entries)} entries, "
            f"{sum(1 for r in results if r.leaves)} with reflected values"
        )
        return results

    def _decode(self, path: KeyPath, value: str) -> Iterator[Leaf]:
        return decode(path, value, self.require_printable, self.config.max_depth)
