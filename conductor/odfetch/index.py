# ODFetch - Index Matcher
# SPDX-License-Identifier: Apache-2.0

"""
Parse ``.index`` sidecars and select the fields a request asks for.

Each index line is one JSON object describing one encoded field:

    {"param": "msl", "levtype": "sfc", "step": "240", "_offset": 1234, "_length": 5678}

``_offset``/``_length`` locate the field in the data file; every other
key describes the field's identity and can be filtered on.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Iterable

from odfetch.errors import IndexParseError, NoMatchingFields, OpenDataError
from odfetch.inference import (
    LOCATION_ONLY_KEYWORDS,
    NUMERIC_KEYWORDS,
    user_to_index_values,
)
from odfetch.request import Request, expand_numeric_syntax
from odfetch.resolver import ResolvedLocation, split_list_syntax

logger = logging.getLogger(__name__)


def normalize_token(key: str, value) -> str:
    """Lower-case and strip; numeric keywords drop leading zeros."""
    text = str(value).strip().lower()
    if key in NUMERIC_KEYWORDS:
        try:
            return str(int(text))
        except ValueError:
            # Ranges such as "0-24" compare as strings
            return text
    return text


@dataclass(frozen=True)
class IndexRecord:
    """One field of a data file, as described by its index"""

    offset: int
    length: int
    fields: dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    @property
    def end(self) -> int:
        """Inclusive last byte"""
        return self.offset + self.length - 1


def _byte_count(entry: dict, key: str, url: str, line_no: int, minimum: int) -> int:
    value = entry.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise IndexParseError(url, line_no, f"missing or non-integer {key}")
    if value < minimum:
        raise IndexParseError(url, line_no, f"{key} must be >= {minimum}, got {value}")
    return value


def parse_index(text: str, url: str = "<index>") -> list[IndexRecord]:
    """Parse newline-delimited JSON index text into records, in file order."""
    records = []
    for line_no, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError as e:
            raise IndexParseError(url, line_no, str(e)) from e
        if not isinstance(entry, dict):
            raise IndexParseError(url, line_no, "expected a JSON object")

        offset = _byte_count(entry, "_offset", url, line_no, minimum=0)
        length = _byte_count(entry, "_length", url, line_no, minimum=1)
        fields = {
            k.lower(): normalize_token(k.lower(), v)
            for k, v in entry.items()
            if not k.startswith("_")
        }
        records.append(IndexRecord(offset, length, fields))
    return records


def load_index(transport, url: str) -> list[IndexRecord]:
    """Fetch and parse one index sidecar."""
    payload = transport.fetch(url)
    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError as e:
        raise IndexParseError(url, 0, f"not UTF-8 text ({e})") from e
    records = parse_index(text, url)
    logger.debug(f"Index {url}: {len(records)} records")
    return records


def build_filter(request: Request) -> dict[str, list[str]]:
    """
    Keyword -> accepted values, in request keyword order.

    Location-only keywords (date, time, stream, ...) are left out: they pick
    the file, not fields inside it.
    """
    filters: dict[str, list[str]] = {}
    for key, _ in request.items():
        if key in LOCATION_ONLY_KEYWORDS:
            continue
        values = []
        for raw in split_list_syntax(request.values_of(key)):
            expanded = expand_numeric_syntax(raw) if key in NUMERIC_KEYWORDS else [raw]
            for v in expanded:
                values.extend(
                    normalize_token(key, x) for x in user_to_index_values(key, v.lower())
                )
        filters[key] = values
    return filters


class IndexMatcher:
    """Selects index records satisfying every filter keyword"""

    def __init__(self, filters: dict[str, list[str]], preserve_request_order: bool = False):
        self.filters = filters
        self.preserve_request_order = preserve_request_order

    @classmethod
    def for_request(cls, request: Request, preserve_request_order: bool = False) -> "IndexMatcher":
        return cls(build_filter(request), preserve_request_order)

    def matches(self, record: IndexRecord) -> bool:
        return all(record.fields.get(k) in values for k, values in self.filters.items())

    def select(self, records: Iterable[IndexRecord]) -> list[IndexRecord]:
        """Matching records, in index order or in request list order."""
        matched = [r for r in records if self.matches(r)]
        if self.preserve_request_order:
            # Stable sort: ties keep index order
            matched.sort(key=self._request_position)
        return matched

    def _request_position(self, record: IndexRecord) -> tuple[int, ...]:
        return tuple(
            values.index(record.fields[k]) for k, values in self.filters.items()
        )

    def unmatched(self, records: Iterable[IndexRecord]) -> list[tuple[str, str]]:
        """Filter pairs that no record carries."""
        records = list(records)
        missing = []
        for key, values in self.filters.items():
            present = {r.fields.get(key) for r in records}
            for v in values:
                if v not in present:
                    missing.append((key, v))
        return missing

    def collect(
        self,
        transport,
        locations: list[ResolvedLocation],
    ) -> list[tuple[ResolvedLocation, list[IndexRecord]]]:
        """
        Read every location's index and select matching records.

        Raises:
            NoMatchingFields: no location yielded a single record
        """
        selections = []
        seen: list[IndexRecord] = []
        for location in locations:
            try:
                records = load_index(transport, location.index_url)
            except OpenDataError:
                logger.error(f"Cannot read index {location.index_url}")
                raise
            seen.extend(records)
            selections.append((location, self.select(records)))

        total = sum(len(chosen) for _, chosen in selections)
        missing = self.unmatched(seen)
        if total == 0:
            if not missing:
                # Each value exists somewhere, just never together
                missing = [(k, ",".join(v)) for k, v in self.filters.items()]
            raise NoMatchingFields(missing)
        for key, value in missing:
            logger.warning(f"No index entry for {key}={value}")

        logger.info(f"Selected {total} field(s) from {len(locations)} index file(s)")
        return selections
