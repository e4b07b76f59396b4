# ODFetch - Location Resolver
# SPDX-License-Identifier: Apache-2.0

"""
Map a fully inferred request to data-file and index-file URLs.

Resolution is pure path computation: no network I/O happens here. Each
combination of date x time x model x resol x stream x type x step yields
one data file; its index sidecar sits next to it with an ``.index``
extension.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from odfetch.config import ClientOptions
from odfetch.dates import (
    canonical_time_to_hour,
    expand_date_value,
    expand_time_value,
    full_datetime,
    hour_from_date_value,
)
from odfetch.errors import InvalidRequest, MissingRequiredKeyword, UnrecognizedKeyword
from odfetch.inference import KNOWN_KEYWORDS, patch_stream, user_to_url_value
from odfetch.request import Request, expand_numeric_syntax
from odfetch.sources import Mirror

logger = logging.getLogger(__name__)

MONTHLY_STREAMS = ("mmsa", "mmsf")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def unique_preserve(values: Iterable) -> list:
    seen = set()
    out = []
    for v in values:
        if v not in seen:
            seen.add(v)
            out.append(v)
    return out


def split_list_syntax(values: list[str]) -> list[str]:
    """Split MARS-style ``a/b/c`` lists, leaving ``a/to/b`` ranges intact."""
    out = []
    for v in values:
        if "/" in v and "/to/" not in v.lower():
            out.extend(t for t in v.split("/") if t)
        else:
            out.append(v)
    return out


def index_url_for(data_url: str) -> str:
    stem, _, _ = data_url.rpartition(".")
    return f"{stem}.index"


@dataclass(frozen=True)
class ResolvedLocation:
    """One data file and its index sidecar"""

    data_url: str
    index_url: str
    base_time: datetime

    @property
    def resolved_date(self) -> str:
        return self.base_time.strftime("%Y%m%d")

    @property
    def resolved_time(self) -> int:
        return self.base_time.hour


class LocationResolver:
    """Builds file locations for one mirror"""

    def __init__(
        self,
        mirror: Mirror,
        options: ClientOptions,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.mirror = mirror
        self.options = options
        self.clock = clock or utcnow

    def resolve(self, request: Request) -> list[ResolvedLocation]:
        """
        Resolve every file location the request covers.

        Raises:
            UnrecognizedKeyword: a keyword has no place in paths or index
            MissingRequiredKeyword: a path segment cannot be determined
        """
        for key in request:
            if key not in KNOWN_KEYWORDS:
                raise UnrecognizedKeyword(key)

        now = self.clock()
        models = self._required(request, "model")
        resols = self._required(request, "resol")
        streams = self._required(request, "stream")
        types = [t.lower() for t in self._required(request, "type")]
        dates, hours = self._dates_and_hours(request, now)

        url_types = unique_preserve(user_to_url_value(models[0], "type", t) for t in types)
        steps = unique_preserve(
            user_to_url_value(models[0], "step", s, tuple(url_types))
            for s in self._expanded(request, "step", ["0"])
        )
        fcmonths = self._expanded(request, "fcmonth", ["1"])

        locations: list[ResolvedLocation] = []
        seen: set[str] = set()
        for d in dates:
            for hour in hours:
                base_time = full_datetime(d, hour)
                for model in models:
                    for resol in resols:
                        for user_stream in streams:
                            for url_type in url_types:
                                for url in self._urls_for(
                                    base_time, model, resol, user_stream.lower(),
                                    url_type, steps, fcmonths,
                                ):
                                    if url in seen:
                                        continue
                                    seen.add(url)
                                    locations.append(
                                        ResolvedLocation(url, index_url_for(url), base_time)
                                    )

        if not locations:
            raise InvalidRequest(f"Request covers no files: {request!r}")
        logger.debug(f"Resolved {len(locations)} location(s) on {self.mirror.name}")
        return locations

    def _urls_for(
        self,
        base_time: datetime,
        model: str,
        resol: str,
        user_stream: str,
        url_type: str,
        steps: list[str],
        fcmonths: list[str],
    ) -> list[str]:
        stream = user_to_url_value(model, "stream", user_stream)
        stream = patch_stream(
            stream,
            base_time.strftime("%H"),
            url_type,
            model,
            self.options.infer_stream_keyword,
        )
        resol_segment = f"{resol}/experimental" if self.options.beta else resol
        monthly = user_stream in MONTHLY_STREAMS

        urls = []
        for value in (fcmonths if monthly else steps):
            url = self.mirror.format_url(
                base_time,
                model=model,
                resol=resol_segment,
                stream=stream,
                type_=url_type,
                step=value,
                fcmonth=value,
                monthly=monthly,
            )
            if resol == "0p4-beta":
                url = url.replace("/ifs/", "/")
            urls.append(url)
        return urls

    def _required(self, request: Request, key: str) -> list[str]:
        values = split_list_syntax(request.values_of(key))
        if not values:
            raise MissingRequiredKeyword(key)
        return values

    def _expanded(self, request: Request, key: str, default: list[str]) -> list[str]:
        values = split_list_syntax(request.values_of(key))
        if not values:
            return list(default)
        out = []
        for v in values:
            out.extend(expand_numeric_syntax(v))
        return out

    def _dates_and_hours(self, request: Request, now: datetime) -> tuple[list[str], list[int]]:
        date_values = self._required(request, "date")
        dates = []
        for v in date_values:
            dates.extend(expand_date_value(v, now))

        time_values = split_list_syntax(request.values_of("time"))
        if time_values:
            hours = []
            for v in time_values:
                hours.extend(canonical_time_to_hour(t) for t in expand_time_value(v))
        else:
            # A full timestamp in date carries its own run hour
            embedded = [hour_from_date_value(v, now) for v in date_values]
            if any(h is None for h in embedded):
                raise MissingRequiredKeyword("time")
            hours = [canonical_time_to_hour(str(h)) for h in embedded]

        return unique_preserve(dates), unique_preserve(hours)
