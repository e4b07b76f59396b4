# ODFetch - Client Configuration
# SPDX-License-Identifier: Apache-2.0

"""
Client-wide configuration.

ClientOptions is validated once and frozen; every pipeline stage receives
it read-only. Environment variables (all optional):

- ODFETCH_SOURCE: mirror name or base URL (default: ecmwf)
- ODFETCH_MODEL: model directory, e.g. ifs, aifs-single (default: ifs)
- ODFETCH_RESOL: resolution directory (default: 0p25)
- ODFETCH_PRESERVE_REQUEST_ORDER: write fields in request order (default: 0)
- ODFETCH_INFER_STREAM_KEYWORD: derive stream from type (default: 1)
- ODFETCH_VERIFY_TLS: verify certificates (default: 1)
- ODFETCH_TIMEOUT: HTTP timeout in seconds (default: 30)
- ODFETCH_RETRIES: transport retries on 5xx/429 (default: 3)
- ODFETCH_MAX_WORKERS: concurrent range fetches (default: 4)
- ODFETCH_MAX_DAYS_BACK: days searched for the latest run (default: 5)
"""

import os
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

ENV_PREFIX = "ODFETCH_"


def is_http_url(value: str) -> bool:
    return value.startswith("http://") or value.startswith("https://")


class ClientOptions(BaseModel):
    """Immutable configuration shared by every request of a Client"""

    model_config = ConfigDict(frozen=True, extra="forbid")

    source: str = Field("ecmwf", description="Mirror name or custom base URL")
    model: str = Field("ifs", description="Default model (ifs, aifs-single, aifs-ens)")
    resol: str = Field("0p25", description="Default resolution directory")
    beta: bool = Field(False, description="Use experimental products")
    preserve_request_order: bool = False
    infer_stream_keyword: bool = True

    # Transport
    verify_tls: bool = True
    timeout: float = Field(30.0, gt=0, le=600)
    retries: int = Field(3, ge=0, le=10)
    use_sas_token: Optional[bool] = Field(
        None, description="Sign URLs with an Azure SAS token (default: azure only)"
    )
    sas_known_key: str = "ecmwf"
    sas_custom_url: Optional[str] = None

    # Concurrency and probing bounds
    max_workers: int = Field(4, ge=1, le=16, description="Concurrent range fetches")
    probe_workers: int = Field(1, ge=1, le=8, description="Concurrent latest-run probes")
    max_days_back: int = Field(5, ge=1, le=30, description="Days searched for latest run")

    @field_validator("source", mode="before")
    @classmethod
    def normalize_source(cls, v):
        if not isinstance(v, str) or not v.strip():
            raise ValueError("source must be a mirror name or URL")
        v = v.strip()
        if is_http_url(v):
            return v.rstrip("/")
        return v.lower()

    @field_validator("model", "resol", mode="before")
    @classmethod
    def strip_segment(cls, v):
        if not isinstance(v, str) or not v.strip():
            raise ValueError("must be a non-empty string")
        return v.strip()

    @property
    def wants_sas_token(self) -> bool:
        if self.use_sas_token is None:
            return self.source == "azure"
        return self.use_sas_token

    @classmethod
    def from_env(cls, environ: Optional[dict] = None, **overrides) -> "ClientOptions":
        """Build options from ODFETCH_* environment variables."""
        env = os.environ if environ is None else environ
        fields = {
            "source": "SOURCE",
            "model": "MODEL",
            "resol": "RESOL",
            "preserve_request_order": "PRESERVE_REQUEST_ORDER",
            "infer_stream_keyword": "INFER_STREAM_KEYWORD",
            "verify_tls": "VERIFY_TLS",
            "timeout": "TIMEOUT",
            "retries": "RETRIES",
            "max_workers": "MAX_WORKERS",
            "max_days_back": "MAX_DAYS_BACK",
        }
        values = {}
        for name, suffix in fields.items():
            raw = env.get(ENV_PREFIX + suffix)
            if raw is not None and raw != "":
                values[name] = raw
        values.update(overrides)
        return cls(**values)
