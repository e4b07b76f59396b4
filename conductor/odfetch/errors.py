# ODFetch - Error Types
# SPDX-License-Identifier: Apache-2.0

"""
Typed failures raised by the retrieval pipeline.

Every error carries a ``stage`` naming the pipeline step that failed
("request", "resolve", "probe", "index", "assemble", "transport") so callers
can tell what went wrong without reading logs.
"""

from typing import Optional, Sequence


class OpenDataError(Exception):
    """Base class for all odfetch failures"""

    stage = "client"


class InvalidRequest(OpenDataError, ValueError):
    """A keyword value cannot be parsed (bad date, time, range syntax...)"""

    stage = "request"


class UnrecognizedKeyword(OpenDataError):
    """The resolver has no place for a keyword"""

    stage = "resolve"

    def __init__(self, keyword: str):
        self.keyword = keyword
        super().__init__(f"Unrecognized request keyword: {keyword!r}")


class MissingRequiredKeyword(OpenDataError):
    """A path segment of the mirror template cannot be determined"""

    stage = "resolve"

    def __init__(self, keyword: str):
        self.keyword = keyword
        super().__init__(
            f"Missing required keyword {keyword!r}: cannot build file location"
        )


class LatestUnavailable(OpenDataError):
    """The latest-run prober exhausted every candidate"""

    stage = "probe"

    def __init__(self, tried: Sequence[str] = ()):
        self.tried = list(tried)
        detail = f" (tried {', '.join(self.tried)})" if self.tried else ""
        super().__init__(
            "Cannot establish latest available date/time"
            f"{detail}; specify 'date' and 'time' explicitly"
        )


class NoMatchingFields(OpenDataError):
    """The index filter selected nothing"""

    stage = "index"

    def __init__(self, unmatched: Sequence[tuple[str, str]]):
        self.unmatched = list(unmatched)
        pairs = ", ".join(f"{k}={v}" for k, v in self.unmatched)
        super().__init__(f"No index entries match request: {pairs}")


class IndexParseError(OpenDataError):
    """A line of the index sidecar is malformed"""

    stage = "index"

    def __init__(self, url: str, line_no: int, reason: str):
        self.url = url
        self.line_no = line_no
        self.reason = reason
        super().__init__(f"Malformed index {url} line {line_no}: {reason}")


class TransportError(OpenDataError):
    """Opaque failure reported by the transport"""

    stage = "transport"

    def __init__(self, url: str, message: str, status: Optional[int] = None):
        self.url = url
        self.status = status
        code = f" [HTTP {status}]" if status is not None else ""
        super().__init__(f"{message}{code}: {url}")


class NotFound(TransportError):
    """The requested URL does not exist on the mirror"""

    def __init__(self, url: str, status: Optional[int] = 404):
        super().__init__(url, "Not found", status)


class PartialDataUnavailable(OpenDataError):
    """A byte-range fetch failed while assembling the output"""

    stage = "assemble"

    def __init__(self, url: str, start: int, end: int, reason: str):
        self.url = url
        self.start = start
        self.end = end
        self.reason = reason
        super().__init__(f"Range {start}-{end} of {url} unavailable: {reason}")
