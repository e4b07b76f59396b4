# ODFetch - Mirror Registry
# SPDX-License-Identifier: Apache-2.0

"""
Known open data mirrors and their path templates.

Each mirror is a small strategy: a base URL plus the templates used to lay
out run directories and file names. The public mirrors currently share one
layout:

    {url}/{yyyymmdd}/{H}z/{model}/{resol}/{stream}/{yyyymmddHHMMSS}-{step}h-{stream}-{type}.{ext}

Monthly products (stream mmsa) use ``{fcmonth}m`` in place of ``{step}h``.
A custom http(s) base URL gets the same layout anchored at that root.
"""

from dataclasses import dataclass
from datetime import datetime

from odfetch.config import is_http_url
from odfetch.errors import InvalidRequest

HOURLY_PATTERN = (
    "{url}/{yyyymmdd}/{H}z/{model}/{resol}/{stream}/"
    "{yyyymmddHHMMSS}-{step}h-{stream}-{type}.{ext}"
)
MONTHLY_PATTERN = (
    "{url}/{yyyymmdd}/{H}z/{model}/{resol}/{stream}/"
    "{yyyymmddHHMMSS}-{fcmonth}m-{stream}-{type}.{ext}"
)

AZURE_SAS_URLS = {
    "ecmwf": "https://planetarycomputer.microsoft.com/api/sas/v1/token/ai4edataeuwest/ecmwf",
}


def extension_for_type(type_: str) -> str:
    # Tropical cyclone tracks are BUFR, everything else GRIB2
    return "bufr" if type_ == "tf" else "grib2"


@dataclass(frozen=True)
class Mirror:
    """Path layout strategy for one data distribution mirror"""

    name: str
    base_url: str
    hourly_pattern: str = HOURLY_PATTERN
    monthly_pattern: str = MONTHLY_PATTERN

    def format_url(
        self,
        base_time: datetime,
        model: str,
        resol: str,
        stream: str,
        type_: str,
        step: str = "0",
        fcmonth: str = "1",
        monthly: bool = False,
    ) -> str:
        pattern = self.monthly_pattern if monthly else self.hourly_pattern
        return pattern.format(
            url=self.base_url,
            yyyymmdd=base_time.strftime("%Y%m%d"),
            H=base_time.strftime("%H"),
            yyyymmddHHMMSS=base_time.strftime("%Y%m%d%H%M%S"),
            model=model,
            resol=resol,
            stream=stream,
            type=type_,
            step=step,
            fcmonth=fcmonth,
            ext=extension_for_type(type_),
        )


MIRRORS: dict[str, Mirror] = {
    "ecmwf": Mirror("ecmwf", "https://data.ecmwf.int/forecasts"),
    "azure": Mirror("azure", "https://ai4edataeuwest.blob.core.windows.net/ecmwf"),
    "aws": Mirror("aws", "https://ecmwf-forecasts.s3.eu-central-1.amazonaws.com"),
    "google": Mirror("google", "https://storage.googleapis.com/ecmwf-open-data"),
    "ecmwf-esuites": Mirror("ecmwf-esuites", "https://xdiss.ecmwf.int/ecpds/home/opendata"),
}


def register_mirror(mirror: Mirror) -> None:
    """Add or replace a named mirror strategy."""
    MIRRORS[mirror.name.lower()] = mirror


def get_mirror(source: str) -> Mirror:
    """Return the mirror for a name, or a custom mirror for an http(s) URL."""
    if is_http_url(source):
        return Mirror("custom", source.rstrip("/"))
    try:
        return MIRRORS[source.lower()]
    except KeyError:
        known = ", ".join(sorted(MIRRORS))
        raise InvalidRequest(f"Unknown source {source!r} (known: {known})") from None
