# ODFetch - Latest Run Prober
# SPDX-License-Identifier: Apache-2.0

"""
Find the most recent forecast run available on a mirror.

Open data appears on mirrors several hours after the nominal run time, and
not every mirror publishes at the same moment. When a request carries no
date, candidate runs are walked newest-first:

    today 18z, 12z, 06z, 00z, yesterday 18z, ...

skipping runs in the future, for at most ``max_days_back`` days. The first
candidate whose data files all exist wins. This is a convenience, not a
guarantee: callers that need a specific run should pass date and time.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

from odfetch.dates import canonical_time_to_hour, expand_time_value
from odfetch.errors import LatestUnavailable
from odfetch.request import Request
from odfetch.resolver import LocationResolver, split_list_syntax, utcnow

logger = logging.getLogger(__name__)


class ProbeState(Enum):
    PROBING = "probing"
    RESOLVED = "resolved"
    EXHAUSTED = "exhausted"


class LatestProber:
    """
    Walks candidate runs backwards until one exists on the mirror.

    One prober serves a single call; it records the candidates it visited
    and its final state.
    """

    # Synoptic run hours in priority order
    DEFAULT_HOURS = (18, 12, 6, 0)

    def __init__(
        self,
        resolver: LocationResolver,
        transport,
        max_days_back: int = 5,
        workers: int = 1,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.resolver = resolver
        self.transport = transport
        self.max_days_back = max_days_back
        self.workers = max(1, workers)
        self.clock = clock or utcnow

        self.state = ProbeState.PROBING
        self.visited: list[datetime] = []
        self.resolved: Optional[datetime] = None

    def candidates(self, request: Request) -> list[datetime]:
        """Candidate run times, newest first."""
        now = self.clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)

        time_values = split_list_syntax(request.values_of("time"))
        if time_values:
            hours = set()
            for v in time_values:
                hours.update(canonical_time_to_hour(t) for t in expand_time_value(v))
            ordered_hours = sorted(hours, reverse=True)
        else:
            ordered_hours = list(self.DEFAULT_HOURS)

        out = []
        today = now.date()
        for offset in range(self.max_days_back):
            day = today - timedelta(days=offset)
            for hour in ordered_hours:
                candidate = datetime(day.year, day.month, day.day, hour, tzinfo=timezone.utc)
                if candidate <= now:
                    out.append(candidate)
        return out

    def probe(self, request: Request) -> datetime:
        """
        Return the newest available run time for the request.

        Raises:
            LatestUnavailable: no candidate exists within the search bound
        """
        candidates = self.candidates(request)
        logger.info(
            f"Probing {len(candidates)} candidate runs on {self.resolver.mirror.name}"
        )

        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            for start in range(0, len(candidates), self.workers):
                window = candidates[start:start + self.workers]
                self.visited.extend(window)
                futures = [pool.submit(self._available, request, c) for c in window]

                winner = None
                # Priority order, not completion order
                for candidate, future in zip(window, futures):
                    if future.result():
                        winner = candidate
                        break

                if winner is not None:
                    for future in futures:
                        future.cancel()
                    self.state = ProbeState.RESOLVED
                    self.resolved = winner
                    logger.info(f"Latest run: {winner:%Y-%m-%d %H}z")
                    return winner

        self.state = ProbeState.EXHAUSTED
        raise LatestUnavailable([f"{c:%Y%m%d} {c:%H}z" for c in candidates])

    def _available(self, request: Request, candidate: datetime) -> bool:
        probe_request = request.copy()
        probe_request.set("date", candidate.strftime("%Y%m%d"))
        probe_request.set("time", candidate.hour)

        for location in self.resolver.resolve(probe_request):
            if not self.transport.exists(location.data_url):
                logger.debug(f"Not available: {location.data_url}")
                return False
        return True
