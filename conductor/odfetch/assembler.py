# ODFetch - Range Assembler
# SPDX-License-Identifier: Apache-2.0

"""
Fetch selected fields with as few HTTP range requests as possible.

Selected index records are sorted by offset and adjacent or overlapping
spans are merged into a single range request. Each merged range is fetched
once (several ranges in parallel), buffered, and split back into the
original per-record byte spans so fields can be written in any order.

    records:  [0..99] [100..149]         [400..499]
    merged:   [0.............149]        [400..499]
"""

import logging
import os
import tempfile
from contextlib import contextmanager
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator, Union

from odfetch.errors import PartialDataUnavailable, TransportError
from odfetch.index import IndexRecord

logger = logging.getLogger(__name__)


@dataclass
class MergedRange:
    """Inclusive byte range covering one or more records"""

    start: int
    end: int
    members: list[IndexRecord] = field(default_factory=list)

    @property
    def size(self) -> int:
        return self.end - self.start + 1


def merge_spans(records: Iterable[IndexRecord]) -> list[MergedRange]:
    """Merge record spans that overlap or touch, in offset order."""
    merged: list[MergedRange] = []
    for record in sorted(records, key=lambda r: (r.offset, r.end)):
        if merged and record.offset <= merged[-1].end + 1:
            last = merged[-1]
            last.end = max(last.end, record.end)
            last.members.append(record)
        else:
            merged.append(MergedRange(record.offset, record.end, [record]))
    return merged


def split_buffer(rng: MergedRange, buffer: bytes, record: IndexRecord) -> bytes:
    """Cut one record's bytes out of its merged range buffer."""
    start = record.offset - rng.start
    return buffer[start:start + record.length]


class RangeAssembler:
    """Fetches the records of one data file and returns them in order"""

    def __init__(self, transport, max_workers: int = 4):
        self.transport = transport
        self.max_workers = max(1, max_workers)

    def assemble(self, url: str, records: list[IndexRecord]) -> list[bytes]:
        """
        Fetch records from url; return one chunk per record, in the given order.

        Raises:
            PartialDataUnavailable: any range failed or came back short
        """
        if not records:
            return []

        ranges = merge_spans(records)
        logger.info(
            f"Fetching {len(records)} field(s) in {len(ranges)} range request(s) from {url}"
        )

        workers = min(self.max_workers, len(ranges))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            buffers = list(pool.map(lambda r: self._fetch(url, r), ranges))

        # Record -> (range, buffer) by identity; equal spans may repeat
        owner = {}
        for rng, buf in zip(ranges, buffers):
            for member in rng.members:
                owner[id(member)] = (rng, buf)

        return [split_buffer(*owner[id(r)], r) for r in records]

    def _fetch(self, url: str, rng: MergedRange) -> bytes:
        try:
            data = self.transport.fetch_range(url, [(rng.start, rng.end)])
        except TransportError as e:
            raise PartialDataUnavailable(url, rng.start, rng.end, str(e)) from e

        if len(data) != rng.size:
            raise PartialDataUnavailable(
                url, rng.start, rng.end, f"expected {rng.size} bytes, got {len(data)}"
            )
        return data


@contextmanager
def atomic_write(path: Union[str, Path]) -> Iterator[BinaryIO]:
    """
    Open a temporary file next to path; replace path with it on success.

    A failed write never leaves a truncated or appended-to target: the
    temporary file is removed and any existing target is left as it was.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{target.name}.", suffix=".part", dir=target.parent
    )
    try:
        with os.fdopen(fd, "wb") as f:
            yield f
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def write_target(path: Union[str, Path], chunks: Iterable[bytes]) -> int:
    """Write chunks to path atomically; return bytes written."""
    total = 0
    with atomic_write(path) as f:
        for chunk in chunks:
            f.write(chunk)
            total += len(chunk)
    logger.info(f"Wrote {total} bytes to {path}")
    return total
