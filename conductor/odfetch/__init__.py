# ODFetch - ECMWF Open Data Retrieval
# SPDX-License-Identifier: Apache-2.0

"""
Retrieval client for ECMWF open data forecasts.

Turns MARS-like keyword requests into files on disk:
1. Location Resolution: map keywords to data and index URLs on a mirror
2. Latest Probing: find the newest published run when no date is given
3. Selective Retrieval: filter index sidecars and fetch merged byte ranges
"""

__version__ = "0.1.0"

from odfetch.client import Client, RetrieveResult
from odfetch.config import ClientOptions
from odfetch.errors import (
    IndexParseError,
    InvalidRequest,
    LatestUnavailable,
    MissingRequiredKeyword,
    NoMatchingFields,
    NotFound,
    OpenDataError,
    PartialDataUnavailable,
    TransportError,
    UnrecognizedKeyword,
)
from odfetch.request import Request
from odfetch.resolver import ResolvedLocation
from odfetch.sources import MIRRORS, Mirror

__all__ = [
    "Client",
    "ClientOptions",
    "RetrieveResult",
    "Request",
    "ResolvedLocation",
    "Mirror",
    "MIRRORS",
    "OpenDataError",
    "InvalidRequest",
    "UnrecognizedKeyword",
    "MissingRequiredKeyword",
    "LatestUnavailable",
    "NoMatchingFields",
    "IndexParseError",
    "TransportError",
    "NotFound",
    "PartialDataUnavailable",
]
