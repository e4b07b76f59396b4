# ODFetch - Client
# SPDX-License-Identifier: Apache-2.0

"""
Public entry point: turn a request into a file on disk.

Pipeline for one call:

    request -> infer keywords -> [probe latest run] -> resolve locations
            -> selective: read indexes, fetch merged ranges, write fields
            -> whole-file: stream every data file into the target

Each call builds its own resolver, prober and assembler; the only state a
Client keeps is its frozen options, its transport and the optional SAS
token.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, Optional, Union

from odfetch.assembler import RangeAssembler, atomic_write, write_target
from odfetch.config import ClientOptions
from odfetch.index import IndexMatcher
from odfetch.inference import infer_keywords, is_selective
from odfetch.prober import LatestProber
from odfetch.request import Request
from odfetch.resolver import LocationResolver, ResolvedLocation
from odfetch.sources import Mirror, get_mirror
from odfetch.transport import HTTPTransport, Transport, fetch_sas_token

logger = logging.getLogger(__name__)

DEFAULT_TARGET = "data.grib2"

RequestLike = Union[Request, dict, None]


@dataclass
class RetrieveResult:
    """Outcome of one retrieval"""

    size_bytes: int
    datetime: datetime
    target_path: str
    urls: list[str] = field(default_factory=list)
    field_count: Optional[int] = None
    for_index: dict[str, list[str]] = field(default_factory=dict)

    @property
    def selective(self) -> bool:
        return self.field_count is not None


class Client:
    """
    Retrieve open data forecast files, or selected fields of them.

    Args:
        options: Client configuration (defaults to ClientOptions())
        transport: Mirror access; an HTTPTransport is built from options if omitted
        clock: Returns "now" as a UTC datetime; used for relative dates and probing
        **option_kwargs: Overrides applied on top of options

    Example:
        client = Client(source="aws")
        result = client.retrieve(type="fc", param="msl", step=240, target="msl.grib2")
    """

    def __init__(
        self,
        options: Optional[ClientOptions] = None,
        transport: Optional[Transport] = None,
        clock: Optional[Callable[[], datetime]] = None,
        **option_kwargs,
    ):
        if options is None:
            options = ClientOptions(**option_kwargs)
        elif option_kwargs:
            options = ClientOptions(**{**options.model_dump(), **option_kwargs})
        self.options = options
        self.clock = clock

        self.transport = transport or HTTPTransport(
            timeout=options.timeout,
            retries=options.retries,
            verify=options.verify_tls,
        )

        self.sas_token: Optional[str] = None
        if options.wants_sas_token:
            self.sas_token = fetch_sas_token(
                self.transport, options.sas_known_key, options.sas_custom_url
            )
            self.transport.sas_token = self.sas_token

    # -- public API -------------------------------------------------------

    def retrieve(self, request: RequestLike = None, target=None, **kwargs) -> RetrieveResult:
        """
        Retrieve data for a request given as a Request, a dict, or keywords.

        Only the matching fields are fetched when the request names fields
        (param, levelist, number, ...); otherwise whole files are downloaded.
        """
        return self._retrieve(self._build(request, kwargs), target, selective=None)

    def retrieve_request(self, request: Request, target=None) -> RetrieveResult:
        return self._retrieve(request.copy(), target, selective=None)

    def retrieve_pairs(self, pairs: Iterable[tuple[str, object]], target=None) -> RetrieveResult:
        return self._retrieve(Request.from_pairs(pairs), target, selective=None)

    def download(self, target=None, request: RequestLike = None, **kwargs) -> RetrieveResult:
        """Download whole files, ignoring any field keywords."""
        return self._retrieve(self._build(request, kwargs), target, selective=False)

    def download_request(self, request: Request, target=None) -> RetrieveResult:
        return self._retrieve(request.copy(), target, selective=False)

    def latest(self, request: RequestLike = None, **kwargs) -> datetime:
        """Return the newest run available on the mirror for this request."""
        req = self._build(request, kwargs)
        req.remove("date")
        req = infer_keywords(req, self.options)
        return self._prober(self._resolver(req)).probe(req)

    def resolve(self, request: RequestLike = None, **kwargs) -> list[ResolvedLocation]:
        """Return the file locations a request covers, without downloading."""
        req, resolver = self._prepare(self._build(request, kwargs))
        return resolver.resolve(req)

    # -- pipeline ---------------------------------------------------------

    @staticmethod
    def _build(request: RequestLike, kwargs: dict) -> Request:
        if request is None:
            req = Request()
        elif isinstance(request, Request):
            req = request.copy()
        elif isinstance(request, dict):
            req = Request(**request)
        else:
            raise TypeError(f"request must be a Request or dict, got {type(request).__name__}")
        for key, value in kwargs.items():
            req.set(key, value)
        return req

    def _mirror(self, request: Request) -> Mirror:
        return get_mirror(request.first("source") or self.options.source)

    def _resolver(self, request: Request) -> LocationResolver:
        return LocationResolver(self._mirror(request), self.options, self.clock)

    def _prober(self, resolver: LocationResolver) -> LatestProber:
        return LatestProber(
            resolver,
            self.transport,
            max_days_back=self.options.max_days_back,
            workers=self.options.probe_workers,
            clock=self.clock,
        )

    def _prepare(self, request: Request) -> tuple[Request, LocationResolver]:
        if not self.options.preserve_request_order:
            request = request.canonical()
        request = infer_keywords(request, self.options)
        resolver = self._resolver(request)

        if "date" not in request:
            run = self._prober(resolver).probe(request)
            request.set("date", run.strftime("%Y%m%d"))
            request.set("time", run.hour)
        return request, resolver

    def _retrieve(self, request: Request, target, selective: Optional[bool]) -> RetrieveResult:
        request, resolver = self._prepare(request)
        locations = resolver.resolve(request)
        target_path = str(target or request.first("target") or DEFAULT_TARGET)

        if selective is None:
            selective = is_selective(request)

        logger.info(
            f"{'Retrieving fields' if selective else 'Downloading'} from "
            f"{resolver.mirror.name}: {request!r}"
        )
        if selective:
            return self._retrieve_fields(request, locations, target_path)
        return self._download_files(locations, target_path)

    def _retrieve_fields(
        self,
        request: Request,
        locations: list[ResolvedLocation],
        target_path: str,
    ) -> RetrieveResult:
        matcher = IndexMatcher.for_request(request, self.options.preserve_request_order)
        selections = matcher.collect(self.transport, locations)

        assembler = RangeAssembler(self.transport, self.options.max_workers)
        chunks: list[bytes] = []
        for location, records in selections:
            chunks.extend(assembler.assemble(location.data_url, records))

        size = write_target(target_path, chunks)
        return RetrieveResult(
            size_bytes=size,
            datetime=locations[0].base_time,
            target_path=target_path,
            urls=[loc.data_url for loc in locations],
            field_count=len(chunks),
            for_index=matcher.filters,
        )

    def _download_files(self, locations: list[ResolvedLocation], target_path: str) -> RetrieveResult:
        size = 0
        with atomic_write(target_path) as f:
            for location in locations:
                size += self.transport.fetch_to(location.data_url, f)
        logger.info(f"Wrote {size} bytes to {target_path}")

        return RetrieveResult(
            size_bytes=size,
            datetime=locations[0].base_time,
            target_path=target_path,
            urls=[loc.data_url for loc in locations],
        )
