# ODFetch - Keyword Inference
# SPDX-License-Identifier: Apache-2.0

"""
Fill in keywords the caller omitted and map user values to file-naming values.

Open data file names do not always use the values a user writes in a
request: ensemble members (cf/pf) live in "ef" files, ensemble means and
spreads in "ep" files, and the 06/18 UTC high-resolution runs use the
"scda"/"scwv" streams. These rules are kept here so the resolver and the
index matcher stay simple path and filter logic.
"""

import logging
from typing import Optional

from odfetch.config import ClientOptions
from odfetch.dates import end_step
from odfetch.request import Request

logger = logging.getLogger(__name__)

# Keywords that shape the file path
URL_KEYWORDS = ("date", "time", "model", "resol", "stream", "type", "step", "fcmonth")

# Keywords present in index records that may be used to select fields
INDEX_KEYWORDS = ("param", "type", "step", "fcmonth", "number", "levelist", "levtype")

# Keywords that steer the client but describe no file or field
CONTROL_KEYWORDS = ("target", "source")

# Never used to filter index records
LOCATION_ONLY_KEYWORDS = frozenset(
    ("target", "source", "model", "resol", "date", "time", "stream")
)

# Keywords that select a file without needing the index
LOCATION_KEYWORDS = frozenset(URL_KEYWORDS + CONTROL_KEYWORDS)

KNOWN_KEYWORDS = frozenset(URL_KEYWORDS + INDEX_KEYWORDS + CONTROL_KEYWORDS)

# Keywords compared as integers when both sides are integers
NUMERIC_KEYWORDS = frozenset(("step", "levelist", "number", "fcmonth"))

TYPE_TO_STREAM = {
    "fc": "oper",
    "tf": "oper",
    "cf": "enfo",
    "pf": "enfo",
    "ef": "enfo",
    "em": "enfo",
    "es": "enfo",
    "ep": "enfo",
    "fcmean": "mmsf",
}

ENSEMBLE_TYPES = frozenset(("cf", "pf", "ef", "em", "es", "ep"))

# Ocean wave parameters are distributed in separate wave streams
WAVE_PARAMS = frozenset(("swh", "mwd", "mwp", "mp2", "pp1d"))

HOUR_STREAMS = {
    ("oper", "06"): "scda",
    ("oper", "18"): "scda",
    ("wave", "06"): "scwv",
    ("wave", "18"): "scwv",
}

ENSEMBLE_STREAMS = {
    ("oper", "ef"): "enfo",
    ("wave", "ef"): "waef",
    ("oper", "ep"): "enfo",
    ("wave", "ep"): "waef",
    ("scda", "ef"): "enfo",
    ("scwv", "ef"): "waef",
    ("scda", "ep"): "enfo",
    ("scwv", "ep"): "waef",
}


def infer_stream(
    types: list[str],
    params: list[str],
    model: Optional[str] = None,
) -> Optional[str]:
    """
    Derive the stream keyword from type (and param for wave products).

    Returns None when no rule applies.
    """
    if model == "aifs-ens":
        return "enfo"

    type_ = types[0].lower() if types else "fc"
    stream = TYPE_TO_STREAM.get(type_)
    if stream is None:
        return None

    lowered = [p.lower() for p in params]
    if lowered and all(p in WAVE_PARAMS for p in lowered):
        if stream == "oper":
            return "wave"
        if stream == "enfo":
            return "waef"
    return stream


def infer_keywords(request: Request, options: ClientOptions) -> Request:
    """
    Return a copy of request with defaults and inferred keywords applied.

    Never fails: keywords no rule can fill are left unset for the resolver
    to report.
    """
    req = request.copy()

    if "model" not in req:
        req.set("model", options.model)
    if "resol" not in req:
        req.set("resol", options.resol)
    if "type" not in req:
        req.set("type", "fc")

    if "stream" not in req and options.infer_stream_keyword:
        stream = infer_stream(
            req.values_of("type"), req.values_of("param"), req.first("model")
        )
        if stream is not None:
            logger.debug(f"Inferred stream={stream} from type={req.get('type')}")
            req.set("stream", stream)

    return req


def patch_stream(
    stream: str,
    hour: str,
    url_type: str,
    model: str,
    infer: bool = True,
) -> str:
    """Adjust the stream for the run hour and the file type."""
    if not infer or model == "aifs-single":
        return stream
    stream = HOUR_STREAMS.get((stream, hour), stream)
    return ENSEMBLE_STREAMS.get((stream, url_type), stream)


def user_to_url_value(
    model: str,
    key: str,
    value: str,
    url_types: tuple[str, ...] = (),
) -> str:
    """Map a user keyword value to the value used in file names."""
    if key == "type":
        # aifs-ens files keep cf/pf in their names
        if model == "aifs-ens" and value in ("cf", "pf"):
            return value
        return {"cf": "ef", "pf": "ef", "em": "ep", "es": "ep", "fcmean": "fc"}.get(
            value, value
        )

    if key == "stream":
        return {"mmsa": "mmsf"}.get(value, value)

    if key == "step" and tuple(url_types) == ("ep",):
        # Probability products come in a 0-240h and a 240-360h file
        end = end_step(value)
        if end is not None:
            return "240" if end <= 240 else "360"

    return value


def user_to_index_values(key: str, value: str) -> list[str]:
    """Map a user keyword value to the values found in index records."""
    if key == "type" and value == "ef":
        return ["cf", "pf"]
    return [value]


def is_selective(request: Request) -> bool:
    """True if the request names fields beyond what selects the file."""
    if request.first("type", "fc").lower() == "tf":
        # BUFR track files have no index
        return False
    return any(key not in LOCATION_KEYWORDS for key in request)
