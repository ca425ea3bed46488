"""Cache-aware fetch protocol with per-attempt timeout and linear backoff.

One ``fetch()`` call is one logical retrieval (a fetch cycle):

    IDLE -> FETCHING -> SUCCESS | NOT_MODIFIED | RETRYING | FAILED
    RETRYING -> FETCHING (after attempt * retry_base_delay seconds)

Transient failures (transport errors, non-2xx responses, timeouts) are
retried up to ``max_attempts``. Cancellation of the awaiting task is never
retried: it propagates so a superseding cycle can take over.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from urllib.parse import urlsplit

import httpx

from meteogram.config.schema import FetchConfig
from meteogram.ingest.url_resolver import with_cache_buster
from meteogram.models.errors import (
    TRANSIENT_ERRORS,
    FetchTimeout,
    InvalidSource,
    MissingIdentification,
    NetworkFailure,
)
from meteogram.models.fetch import (
    CacheValidators,
    FetchOutcome,
    FetchState,
    FetchTarget,
    TargetKind,
)

logger = logging.getLogger(__name__)

ACCEPT_HEADERS = {
    TargetKind.STRUCTURED_FORECAST: "application/json",
    TargetKind.RAW_VECTOR: "image/svg+xml,text/html;q=0.9,*/*;q=0.8",
}


class FetchController:
    """Executes fetch cycles and owns the cache-validator record.

    The validator record is replaced, never mutated, and is reset whenever
    the resolved request URL differs from the one it was captured for.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
        max_attempts: int = 5,
        retry_base_delay: float = 1.0,
        clock: Callable[[], float] = time.time,
    ):
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_base_delay = retry_base_delay
        self._clock = clock
        self.validators = CacheValidators()
        self.state = FetchState.IDLE
        self._identification_warning_logged = False

    @classmethod
    def from_config(
        cls, config: FetchConfig, client: httpx.AsyncClient | None = None
    ) -> "FetchController":
        return cls(
            client=client,
            timeout=config.timeout_seconds,
            max_attempts=config.max_attempts,
            retry_base_delay=config.retry_base_delay_seconds,
        )

    def reset(self) -> None:
        """Forget validators and per-configuration warnings (source/auth change)."""
        self.validators = CacheValidators()
        self.rearm_warnings()
        self.state = FetchState.IDLE

    def rearm_warnings(self) -> None:
        """Allow once-per-configuration warnings to be logged again."""
        self._identification_warning_logged = False

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(follow_redirects=True, timeout=self.timeout)
        return self._client

    def validators_for(self, request_url: str) -> CacheValidators:
        """Return the validators for ``request_url``, resetting them if it changed."""
        if self.validators.last_request_url != request_url:
            if self.validators.present:
                logger.info("Request URL changed, discarding cache validators")
            self.validators = CacheValidators(last_request_url=request_url)
        return self.validators

    def build_request_url(self, target: FetchTarget, validators: CacheValidators) -> str:
        if validators.present or target.kind != TargetKind.RAW_VECTOR:
            return target.request_url
        return with_cache_buster(target.request_url, str(int(self._clock() * 1000)))

    def build_headers(
        self, target: FetchTarget, user_agent: str, validators: CacheValidators
    ) -> dict[str, str]:
        headers = {"Accept": ACCEPT_HEADERS[target.kind]}
        headers.update(self._identification_header(user_agent))
        if validators.present:
            headers["Cache-Control"] = "no-cache"
            if validators.last_modified:
                headers["If-Modified-Since"] = validators.last_modified
            if validators.etag:
                headers["If-None-Match"] = validators.etag
        else:
            headers["Cache-Control"] = "no-store"
            headers["Pragma"] = "no-cache"
        return headers

    def _identification_header(self, user_agent: str) -> dict[str, str]:
        """User-Agent header, or nothing if the value cannot be sent on the wire."""
        try:
            user_agent.encode("ascii")
            if any(ch in user_agent for ch in "\r\n\0"):
                raise ValueError("control characters in header value")
        except (UnicodeEncodeError, ValueError) as e:
            if not self._identification_warning_logged:
                logger.warning(
                    "Unable to set User-Agent header (%s); continuing without it", e
                )
                self._identification_warning_logged = True
            return {}
        return {"User-Agent": user_agent}

    async def fetch(self, target: FetchTarget, user_agent: str | None) -> FetchOutcome:
        """Run one fetch cycle against ``target``.

        Raises MissingIdentification or InvalidSource before any request is
        made. Transport failures never raise: after the last attempt the
        outcome is FAILED with the final error attached.
        """
        if user_agent is None or not user_agent.strip():
            raise MissingIdentification(
                "Please configure a valid API User-Agent before fetching data."
            )
        scheme = urlsplit(target.request_url).scheme.lower()
        if scheme not in ("http", "https"):
            raise InvalidSource("Invalid Source URL provided.")

        attempt = 1
        while True:
            self.state = FetchState.FETCHING
            try:
                outcome = await self._attempt(target, user_agent.strip(), attempt)
            except TRANSIENT_ERRORS as e:
                if attempt < self.max_attempts:
                    self.state = FetchState.RETRYING
                    delay = self.retry_base_delay * attempt
                    logger.warning(
                        "Fetch of %s failed (%s), retrying in %.1fs (attempt %d/%d)",
                        target.request_url, e.message, delay, attempt, self.max_attempts,
                    )
                    await asyncio.sleep(delay)
                    attempt += 1
                    continue
                self.state = FetchState.FAILED
                logger.error(
                    "Fetch of %s failed after %d attempts: %s",
                    target.request_url, attempt, e.message,
                )
                return FetchOutcome(
                    state=FetchState.FAILED, target=target, attempts=attempt, error=e
                )
            self.state = outcome.state
            return outcome

    async def _attempt(self, target: FetchTarget, user_agent: str, attempt: int) -> FetchOutcome:
        validators = self.validators_for(target.request_url)
        url = self.build_request_url(target, validators)
        headers = self.build_headers(target, user_agent, validators)
        logger.debug("GET %s (attempt %d)", url, attempt)

        try:
            async with asyncio.timeout(self.timeout):
                resp = await self._get_client().get(url, headers=headers, timeout=self.timeout)
        except TimeoutError as e:
            raise FetchTimeout(f"Request timed out after {self.timeout:.0f}s") from e
        except httpx.TimeoutException as e:
            raise FetchTimeout(f"Request timed out: {e}") from e
        except httpx.RequestError as e:
            raise NetworkFailure(f"Request failed: {e}") from e

        if resp.status_code == 304:
            logger.info("%s not modified", target.request_url)
            return FetchOutcome(
                state=FetchState.NOT_MODIFIED, target=target, attempts=attempt
            )
        if not resp.is_success:
            raise NetworkFailure(f"HTTP {resp.status_code}", resp.status_code)

        self.validators = CacheValidators(
            last_modified=resp.headers.get("last-modified"),
            etag=resp.headers.get("etag"),
            last_request_url=target.request_url,
        )
        return FetchOutcome(
            state=FetchState.SUCCESS,
            target=target,
            attempts=attempt,
            payload=resp.text,
            content_type=resp.headers.get("content-type", ""),
        )
