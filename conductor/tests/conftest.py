# ODFetch - Test Fixtures
# SPDX-License-Identifier: Apache-2.0

"""
Shared fixtures: an in-memory mirror and a fixed clock.
"""

import json
from datetime import datetime, timezone

import pytest

from odfetch.errors import NotFound, TransportError
from odfetch.resolver import index_url_for
from odfetch.transport import Transport

ECMWF = "https://data.ecmwf.int/forecasts"


class FakeTransport(Transport):
    """Serves bytes from a dict and records every call, with signed URLs"""

    def __init__(self, files=None):
        self.files = dict(files or {})
        self.calls = []
        self.failing_ranges = set()

    def fetch(self, url):
        self.calls.append(("fetch", self.sign(url), None))
        if url not in self.files:
            raise NotFound(url)
        return self.files[url]

    def fetch_range(self, url, ranges):
        ranges = list(ranges)
        self.calls.append(("range", self.sign(url), ranges))
        if url not in self.files:
            raise NotFound(url)
        for rng in ranges:
            if rng in self.failing_ranges:
                raise TransportError(url, "Connection reset", 503)
        data = self.files[url]
        return b"".join(data[start:end + 1] for start, end in ranges)

    def exists(self, url):
        self.calls.append(("exists", self.sign(url), None))
        return url in self.files

    def calls_of(self, kind):
        return [c for c in self.calls if c[0] == kind]


def make_file(fields, gap=0):
    """
    Build a fake data file and its index text.

    Each field gets a distinct body; ``gap`` bytes of padding separate
    consecutive fields so spans are not adjacent.
    """
    data = b""
    lines = []
    bodies = []
    for i, entry in enumerate(fields):
        body = f"GRIB|{i}|{json.dumps(entry, sort_keys=True)}|7777".encode()
        offset = len(data)
        data += body + b"\x00" * gap
        lines.append(json.dumps({**entry, "_offset": offset, "_length": len(body)}))
        bodies.append(body)
    return data, "\n".join(lines) + "\n", bodies


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def publish(fake_transport):
    """Put a data file and its index on the fake mirror; returns field bodies."""

    def _publish(data_url, fields, gap=0):
        data, index_text, bodies = make_file(fields, gap)
        fake_transport.files[data_url] = data
        fake_transport.files[index_url_for(data_url)] = index_text.encode()
        return bodies

    return _publish


@pytest.fixture
def fixed_clock():
    now = datetime(2024, 1, 10, 20, 30, tzinfo=timezone.utc)
    return lambda: now


def data_url(date="20240110", hour=0, stream="oper", type_="fc", step=240,
             base=ECMWF, model="ifs", resol="0p25"):
    """Expected data URL on a mirror with the standard layout."""
    ext = "bufr" if type_ == "tf" else "grib2"
    return (
        f"{base}/{date}/{hour:02d}z/{model}/{resol}/{stream}/"
        f"{date}{hour:02d}0000-{step}h-{stream}-{type_}.{ext}"
    )
