"""
Amadeus reference data (airports / airlines)
SkyFare - Rate-limit safe lookup layer

Every outbound reference call goes through one ReferenceDataClient:

    rate limit check → pacing slot → GET → 429 / error handling

Lookups are total: resolve_airport / resolve_airline always return a
record, either resolved upstream or synthesized from the code. Both
results and fallbacks are cached for the TTL window.

State (cache, cooldown, pacing) lives on the client instance and is
confined to the event loop, so no locking beyond the pacer's is needed.
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Tuple, Type, Union

import httpx

from app.core import config
from app.core.metrics import record_rate_limit_event, record_reference_lookup, track_external_api
from app.models.flight_models import AirlineInfo, AirportInfo, CacheStats, RateLimitStatus
from app.services.integration.amadeus.client import get_access_token
from app.services.integration.common.errors import AmadeusAuthError

logger = logging.getLogger("SkyFare-ReferenceData")

ReferenceRecord = Union[AirportInfo, AirlineInfo]
TokenProvider = Callable[[], Awaitable[str]]

AIRPORT_ENDPOINT = "/v1/reference-data/locations"
AIRLINE_ENDPOINT = "/v1/reference-data/airlines"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_retry_after(value: Optional[str]) -> Optional[int]:
    """Retry-After in seconds; HTTP-date or garbage values yield None."""
    if not value:
        return None
    try:
        return max(int(value.strip()), 0)
    except ValueError:
        return None


# ═══════════════════════════════════════════════════════════════════
# RATE LIMIT STATE
# ═══════════════════════════════════════════════════════════════════

class RateLimiter:
    """Cooldown gate entered on HTTP 429, cleared lazily once reset_at passes."""

    def __init__(
        self,
        default_cooldown_s: int = config.RATE_LIMIT_DEFAULT_COOLDOWN_S,
        now: Callable[[], datetime] = _utcnow
    ):
        self.default_cooldown_s = default_cooldown_s
        self._now = now
        self.is_limited = False
        self.reset_at: Optional[datetime] = None

    def is_currently_limited(self) -> bool:
        now = self._now()
        if self.is_limited and self.reset_at is not None and now < self.reset_at:
            return True
        self.is_limited = False
        return False

    def record_rate_limited(self, retry_after_s: Optional[int] = None) -> datetime:
        seconds = self.default_cooldown_s if retry_after_s is None else retry_after_s
        self.is_limited = True
        self.reset_at = self._now() + timedelta(seconds=seconds)
        return self.reset_at


# ═══════════════════════════════════════════════════════════════════
# PACING
# ═══════════════════════════════════════════════════════════════════

class RequestPacer:
    """
    Keeps outbound calls at least `interval_s` apart, globally.

    The lock is held while waiting, so concurrent callers are released
    one slot at a time in arrival order.
    """

    def __init__(
        self,
        interval_s: float = config.REFERENCE_REQUEST_INTERVAL_MS / 1000,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.interval_s = interval_s
        self._clock = clock
        self._sleep = sleep
        self._last_call: Optional[float] = None
        self._lock = asyncio.Lock()

    async def await_slot(self) -> None:
        async with self._lock:
            if self._last_call is not None:
                wait = self.interval_s - (self._clock() - self._last_call)
                if wait > 0:
                    await self._sleep(wait)
            self._last_call = self._clock()


# ═══════════════════════════════════════════════════════════════════
# TTL CACHE
# ═══════════════════════════════════════════════════════════════════

class ReferenceCache:
    """Code → record cache. Stale entries are superseded, never evicted."""

    def __init__(
        self,
        ttl: timedelta = timedelta(hours=config.REFERENCE_CACHE_TTL_HOURS),
        now: Callable[[], datetime] = _utcnow
    ):
        self.ttl = ttl
        self._now = now
        self._entries: Dict[str, Dict[str, Any]] = {}

    def get(self, code: str) -> Optional[ReferenceRecord]:
        entry = self._entries.get(code)
        if not entry:
            return None

        if self._now() - entry["cached_at"] > self.ttl:
            return None

        return entry["record"]

    def put(self, code: str, record: ReferenceRecord) -> None:
        self._entries[code] = {
            "record": record,
            "cached_at": self._now()
        }

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


# ═══════════════════════════════════════════════════════════════════
# CLIENT
# ═══════════════════════════════════════════════════════════════════

def _first_match(items: Any, code: str) -> Optional[dict]:
    if not isinstance(items, list):
        return None

    records = [item for item in items if isinstance(item, dict)]
    for record in records:
        if record.get("iataCode") == code:
            return record
    return records[0] if records else None


class ReferenceDataClient:
    def __init__(
        self,
        token_provider: Optional[TokenProvider] = None,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout_s: Optional[float] = None,
        rate_limiter: Optional[RateLimiter] = None,
        pacer: Optional[RequestPacer] = None,
        airport_cache: Optional[ReferenceCache] = None,
        airline_cache: Optional[ReferenceCache] = None
    ):
        self.token_provider = token_provider or get_access_token
        self.base_url = (base_url or config.AMADEUS_BASE_URL).rstrip("/")
        self.timeout_s = timeout_s or config.AMADEUS_HTTP_TIMEOUT
        self.rate_limiter = rate_limiter or RateLimiter()
        self.pacer = pacer or RequestPacer()
        self.airport_cache = airport_cache or ReferenceCache()
        self.airline_cache = airline_cache or ReferenceCache()
        self._client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # ─────────── SAFE FETCH ───────────

    async def safe_get(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]],
        token: str
    ) -> Optional[Dict[str, Any]]:
        """
        GET a reference endpoint. Returns the JSON object, or None when
        rate limited, on non-2xx, on timeout/transport errors and on
        unparseable bodies. Never raises.
        """
        if self.rate_limiter.is_currently_limited():
            logger.info("Currently rate limited, skipping API call")
            return None

        await self.pacer.await_slot()

        # a 429 may have landed while this caller waited for its slot
        if self.rate_limiter.is_currently_limited():
            logger.info("Rate limited while waiting for a slot, skipping API call")
            return None

        url = f"{self.base_url}{endpoint}"
        try:
            client = await self._get_client()
            with track_external_api("amadeus-reference") as call:
                response = await client.get(
                    url,
                    params=params or {},
                    headers={"Authorization": f"Bearer {token}"}
                )
                call["status"] = str(response.status_code)
        except httpx.HTTPError as e:
            logger.error(f"API call failed: {url} - {type(e).__name__}: {e}")
            return None

        if response.status_code == 429:
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            reset_at = self.rate_limiter.record_rate_limited(retry_after)
            record_rate_limit_event()
            logger.warning(f"⚠️ Rate limited. Will retry after {reset_at.isoformat()}")
            return None

        if not response.is_success:
            logger.error(f"API error: {response.status_code} {response.reason_phrase}")
            return None

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"API response was not JSON: {url} - {e}")
            return None

        if not isinstance(data, dict):
            logger.error(f"API response was not an object: {url}")
            return None

        return data

    # ─────────── LOOKUPS ───────────

    async def _resolve(
        self,
        kind: str,
        code: str,
        cache: ReferenceCache,
        endpoint: str,
        params: Dict[str, Any],
        model: Type[ReferenceRecord]
    ) -> ReferenceRecord:
        cached = cache.get(code)
        if cached is not None:
            record_reference_lookup(kind, "hit")
            return cached

        data = None
        if not self.rate_limiter.is_currently_limited():
            token = await self.token_provider()
            data = await self.safe_get(endpoint, params, token)

        record = None
        match = _first_match((data or {}).get("data"), code)
        if match is not None:
            try:
                record = model.from_amadeus(code, match)
            except ValueError as e:
                logger.warning(f"Unusable {kind} record for {code}: {e}")

        if record is not None:
            record_reference_lookup(kind, "miss")
        else:
            record = model.fallback(code)
            record_reference_lookup(kind, "fallback")

        cache.put(code, record)
        return record

    async def resolve_airport(self, code: Optional[str]) -> AirportInfo:
        code = (code or "").strip() or "UNK"
        return await self._resolve(
            "airport",
            code,
            self.airport_cache,
            AIRPORT_ENDPOINT,
            {"subType": "AIRPORT", "keyword": code, "page[limit]": 1},
            AirportInfo
        )

    async def resolve_airline(self, code: Optional[str]) -> AirlineInfo:
        code = (code or "").strip() or "UNK"
        return await self._resolve(
            "airline",
            code,
            self.airline_cache,
            AIRLINE_ENDPOINT,
            {"airlineCodes": code},
            AirlineInfo
        )

    async def resolve_many(
        self,
        airport_codes: Iterable[str],
        airline_codes: Iterable[str]
    ) -> Tuple[Dict[str, AirportInfo], Dict[str, AirlineInfo]]:
        """
        Resolve deduplicated code sets concurrently. One failing lookup
        falls back on its own; only token failures propagate.
        """
        airports = sorted({c for c in airport_codes if c})
        airlines = sorted({c for c in airline_codes if c})

        results = await asyncio.gather(
            *[self.resolve_airport(c) for c in airports],
            *[self.resolve_airline(c) for c in airlines],
            return_exceptions=True
        )

        resolved_airports: Dict[str, AirportInfo] = {}
        resolved_airlines: Dict[str, AirlineInfo] = {}
        jobs = [(c, resolved_airports, AirportInfo) for c in airports] + \
               [(c, resolved_airlines, AirlineInfo) for c in airlines]

        for (code, target, model), result in zip(jobs, results):
            if isinstance(result, AmadeusAuthError):
                raise result
            if isinstance(result, Exception):
                logger.error(f"Lookup for {code} failed, using fallback: {result}")
                result = model.fallback(code)
            elif isinstance(result, BaseException):
                # cancellation
                raise result
            target[code] = result

        return resolved_airports, resolved_airlines

    # ─────────── INTROSPECTION ───────────

    def get_rate_limit_status(self) -> RateLimitStatus:
        limited = self.rate_limiter.is_currently_limited()
        reset_at = self.rate_limiter.reset_at
        return RateLimitStatus(
            is_rate_limited=limited,
            reset_time=int(reset_at.timestamp() * 1000) if reset_at else 0,
            can_make_request=not limited,
            cache_stats=CacheStats(
                airports=len(self.airport_cache),
                airlines=len(self.airline_cache)
            )
        )


# ═══════════════════════════════════════════════════════════════════
# SHARED INSTANCE (route handlers)
# ═══════════════════════════════════════════════════════════════════

_reference_client: Optional[ReferenceDataClient] = None


def get_reference_client() -> ReferenceDataClient:
    global _reference_client
    if _reference_client is None:
        _reference_client = ReferenceDataClient()
    return _reference_client


def set_reference_client(client: Optional[ReferenceDataClient]) -> None:
    global _reference_client
    _reference_client = client


async def close_reference_client() -> None:
    global _reference_client
    if _reference_client is not None:
        await _reference_client.close()
        _reference_client = None


def get_rate_limit_status() -> Dict[str, Any]:
    return get_reference_client().get_rate_limit_status().to_wire()
