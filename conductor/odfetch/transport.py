# ODFetch - HTTP Transport
# SPDX-License-Identifier: Apache-2.0

"""
HTTP access to open data mirrors.

The pipeline only needs four operations: fetch a whole URL, fetch byte
ranges of it, stream it into a file, and check whether it exists. Any
object implementing the Transport interface can be plugged into the Client
(tests use an in-memory one).

HTTPTransport uses a pooled requests session with urllib3 retries for
transient statuses (429/5xx). Ranges follow the HTTP convention: inclusive
``(start, end)`` byte positions.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import BinaryIO, Optional, Sequence

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from odfetch.errors import NotFound, TransportError
from odfetch.sources import AZURE_SAS_URLS

logger = logging.getLogger(__name__)

USER_AGENT = "odfetch/0.1.0"

# HEAD may be blocked or misreported where GET works
HEAD_FALLBACK_STATUSES = (403, 404, 405, 409, 429, 500, 501, 502, 503)


class Transport(ABC):
    """
    Black-box access to a mirror.

    Implementations pass every URL through sign() before requesting it, so
    a SAS token set by the Client applies to any transport.
    """

    sas_token: Optional[str] = None

    def sign(self, url: str) -> str:
        """Append the SAS token, unless the URL is already signed."""
        if not self.sas_token or "sig=" in url:
            return url
        separator = "&" if "?" in url else "?"
        return f"{url}{separator}{self.sas_token}"

    @abstractmethod
    def fetch(self, url: str) -> bytes:
        """Return the full body of url."""

    @abstractmethod
    def fetch_range(self, url: str, ranges: Sequence[tuple[int, int]]) -> bytes:
        """Return the bytes of each inclusive range, concatenated."""

    @abstractmethod
    def exists(self, url: str) -> bool:
        """Cheap existence check."""

    def fetch_to(self, url: str, fileobj: BinaryIO) -> int:
        """Write the full body of url to fileobj; return bytes written."""
        data = self.fetch(url)
        fileobj.write(data)
        return len(data)

    def fetch_json(self, url: str):
        try:
            return json.loads(self.fetch(url))
        except ValueError as e:
            raise TransportError(url, f"Invalid JSON response ({e})") from e


class HTTPTransport(Transport):
    """
    requests-based transport.

    Args:
        timeout: Per-request timeout in seconds
        retries: Retries for 429/5xx responses and connection errors
        verify: Verify TLS certificates
        sas_token: Azure SAS query string appended to every URL
        session: Pre-configured session (tests, proxies)
    """

    CHUNK_SIZE = 1024 * 1024

    def __init__(
        self,
        timeout: float = 30.0,
        retries: int = 3,
        verify: bool = True,
        sas_token: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        self.timeout = timeout
        self.verify = verify
        self.sas_token = sas_token
        self.session = session or self._build_session(retries)

    @staticmethod
    def _build_session(retries: int) -> requests.Session:
        session = requests.Session()
        session.headers["User-Agent"] = USER_AGENT
        retry = Retry(
            total=retries,
            backoff_factor=0.5,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=("GET", "HEAD"),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry, pool_maxsize=16)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        return session

    def _get(self, url: str, headers: Optional[dict] = None, stream: bool = False):
        try:
            resp = self.session.get(
                self.sign(url),
                headers=headers,
                timeout=self.timeout,
                verify=self.verify,
                stream=stream,
            )
        except requests.RequestException as e:
            raise TransportError(url, f"Request failed ({e})") from e

        if resp.status_code == 404:
            resp.close()
            raise NotFound(url)
        if not resp.ok:
            resp.close()
            raise TransportError(url, "Request failed", resp.status_code)
        return resp

    def fetch(self, url: str) -> bytes:
        logger.debug(f"GET {url}")
        return self._get(url).content

    def fetch_range(self, url: str, ranges: Sequence[tuple[int, int]]) -> bytes:
        parts = []
        for start, end in ranges:
            if end < start:
                raise ValueError(f"Invalid byte range {start}-{end}")
            headers = {"Range": f"bytes={start}-{end}"}
            logger.debug(f"GET {url} [{start}-{end}]")
            resp = self._get(url, headers=headers)
            if resp.status_code == 206:
                parts.append(resp.content)
            else:
                # Server ignored the Range header and sent everything
                logger.warning(f"Range not honoured by server, slicing full body: {url}")
                parts.append(resp.content[start:end + 1])
        return b"".join(parts)

    def fetch_to(self, url: str, fileobj: BinaryIO) -> int:
        logger.info(f"Downloading {url}")
        resp = self._get(url, stream=True)
        total = 0
        try:
            for chunk in resp.iter_content(chunk_size=self.CHUNK_SIZE):
                fileobj.write(chunk)
                total += len(chunk)
        except requests.RequestException as e:
            raise TransportError(url, f"Download interrupted ({e})") from e
        finally:
            resp.close()
        return total

    def exists(self, url: str) -> bool:
        signed = self.sign(url)
        try:
            resp = self.session.head(
                signed, timeout=self.timeout, verify=self.verify, allow_redirects=True
            )
            if resp.status_code == 200:
                return True
            if resp.status_code not in HEAD_FALLBACK_STATUSES:
                return False
        except requests.RequestException as e:
            logger.debug(f"HEAD failed for {url}: {e}")

        # One-byte ranged GET as a fallback probe
        try:
            resp = self.session.get(
                signed,
                headers={"Range": "bytes=0-0"},
                timeout=self.timeout,
                verify=self.verify,
            )
        except requests.RequestException as e:
            raise TransportError(url, f"Existence probe failed ({e})") from e
        resp.close()
        return resp.status_code in (200, 206)


def fetch_sas_token(transport: Transport, known_key: str = "ecmwf", custom_url: Optional[str] = None) -> str:
    """Obtain an Azure SAS token from the Planetary Computer token service."""
    url = AZURE_SAS_URLS.get(known_key) or custom_url
    if not url:
        raise TransportError(known_key, "No known SAS token URL and no custom URL provided")

    payload = transport.fetch_json(url)
    token = payload.get("token") if isinstance(payload, dict) else None
    if not isinstance(token, str) or not token:
        raise TransportError(url, "Invalid SAS token response")
    logger.info("Obtained Azure SAS token")
    return token
