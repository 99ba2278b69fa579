from __future__ import annotations

import enum
import logging
import os
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Optional, Type, TypeVar

import requests
from pydantic import BaseModel, ValidationError
from requests import Response

from ..cache import ConditionalCache
from ..entities import CacheKey, Location, Observation
from ..throttle import Throttle


logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "weather-reporter/0.3 (+https://github.com/weather-reporter/weather-reporter)"

T = TypeVar("T", bound=BaseModel)


class ErrorClass(enum.Enum):
    SERVER_RETRYABLE = "server-retryable"
    CLIENT_RETRYABLE = "client-retryable"
    CLIENT_FATAL = "client-fatal"
    TRANSPORT = "transport"
    DECODE = "decode"
    UNKNOWN = "unknown"

    @property
    def fatal(self) -> bool:
        return self is ErrorClass.CLIENT_FATAL

    @property
    def retryable(self) -> bool:
        return not self.fatal


class ProviderError(RuntimeError):
    """Base provider error."""

    error_class = ErrorClass.UNKNOWN

    def __init__(self, message: str, *, status_code: Optional[int] = None, body: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    @property
    def fatal(self) -> bool:
        return self.error_class.fatal

    @property
    def retryable(self) -> bool:
        return self.error_class.retryable


class ServerRetryable(ProviderError):
    error_class = ErrorClass.SERVER_RETRYABLE


class ClientRetryable(ProviderError):
    error_class = ErrorClass.CLIENT_RETRYABLE


class QuotaExceeded(ClientRetryable):
    """Raised when a provider throttles us with a 429 it does not treat as fatal."""


class ClientFatal(ProviderError):
    error_class = ErrorClass.CLIENT_FATAL


class TransportError(ProviderError):
    error_class = ErrorClass.TRANSPORT


class DecodeError(ProviderError):
    error_class = ErrorClass.DECODE


class UnknownStatus(ProviderError):
    error_class = ErrorClass.UNKNOWN


class Outcome(enum.Enum):
    SUCCESS = "success"
    NOT_MODIFIED = "not-modified"
    REDIRECT_OTHER = "redirect-other"
    SERVER_RETRYABLE = "server-retryable"
    CLIENT_RETRYABLE = "client-retryable"
    CLIENT_FATAL = "client-fatal"
    UNKNOWN = "unknown"


def classify(status_code: int, *, rate_limit_fatal: bool = False) -> Outcome:
    """Map an HTTP status code to an :class:`Outcome`.

    ``rate_limit_fatal`` is the provider's policy for ``429``: some providers
    suspend the account when the quota is exceeded, in which case polling
    must stop instead of backing off.
    """
    if status_code >= 500:
        return Outcome.SERVER_RETRYABLE
    if 400 <= status_code < 500:
        if status_code == 429:
            return Outcome.CLIENT_FATAL if rate_limit_fatal else Outcome.CLIENT_RETRYABLE
        if status_code in (400, 403):
            return Outcome.CLIENT_FATAL
        return Outcome.CLIENT_RETRYABLE
    if 300 <= status_code < 400:
        if status_code == 304:
            return Outcome.NOT_MODIFIED
        return Outcome.REDIRECT_OTHER
    if 200 <= status_code < 300:
        return Outcome.SUCCESS
    return Outcome.UNKNOWN


@dataclass
class RequestConfig:
    timeout: float = 10.0
    proxy: Optional[str] = field(default_factory=lambda: os.environ.get("HTTPS_PROXY") or None)
    user_agent: str = DEFAULT_USER_AGENT


class WeatherProvider(Generic[T]):
    """Base class for HTTP weather providers.

    Subclasses describe the endpoint, the native response model and the
    translation into an :class:`Observation`. The base class owns the
    conditional cache, the self throttle and the classification of every
    response; it never retries on its own.
    """

    name = "provider"
    base_url = ""
    response_model: Type[T]
    min_interval = 0.0
    altitude_resolution: Optional[int] = None
    rate_limit_fatal = False
    forbidden_hint = "possible black-listed or missing User-Agent identifier"
    rate_limit_hint = "the provider may have suspended the account"

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        request_config: Optional[RequestConfig] = None,
        *,
        base_url: Optional[str] = None,
        cache: Optional[ConditionalCache[T]] = None,
        throttle: Optional[Throttle] = None,
        min_interval: Optional[float] = None,
        rate_limit_fatal: Optional[bool] = None,
    ) -> None:
        self.request_config = request_config or RequestConfig()
        self.session = session or self._build_session(self.request_config)
        self.base_url = base_url or self.base_url
        if rate_limit_fatal is not None:
            self.rate_limit_fatal = rate_limit_fatal
        if throttle is None:
            throttle = Throttle(self.min_interval if min_interval is None else min_interval)
        self.throttle = throttle
        self.cache: ConditionalCache[T] = cache if cache is not None else ConditionalCache()
        self._lock = threading.Lock()
        self._log = logging.getLogger(self.__class__.__name__)

    def _build_session(self, config: RequestConfig) -> requests.Session:
        session = requests.Session()
        if config.proxy:
            session.proxies.update({"http": config.proxy, "https": config.proxy})
        return session

    # Public API ---------------------------------------------------------
    def query(self, location: Location) -> Observation:
        self._log.debug("querying %s for %s", self.name, location)
        with self._lock:
            result = self._fetch(location)
        return self.to_observation(result, location)

    def cache_key(self, location: Location) -> CacheKey:
        return CacheKey.from_location(location, self.altitude_resolution)

    # Subclass hooks -----------------------------------------------------
    def build_params(self, location: Location) -> Dict[str, Any]:
        raise NotImplementedError

    def to_observation(self, result: T, location: Location) -> Observation:
        raise NotImplementedError

    def _log_client_error(self, response: Response) -> None:
        self._log.error("http client error %s from %s", response.status_code, self.base_url)

    # Request cycle ------------------------------------------------------
    def _fetch(self, location: Location) -> T:
        key = self.cache_key(location)
        cached, last_modified = self.cache.lookup(key)
        if cached is not None:
            self._log.info("%s using cached result (not yet expired)", self.name)
            return cached

        self.throttle.acquire()
        headers = {
            "Accept": "application/json",
            "User-Agent": self.request_config.user_agent,
        }
        if last_modified:
            headers["If-Modified-Since"] = last_modified

        response = self._send(self.build_params(location), headers)
        try:
            return self._handle_response(response, key)
        finally:
            response.close()

    def _send(self, params: Dict[str, Any], headers: Dict[str, str]) -> Response:
        try:
            response = self.session.get(
                self.base_url,
                params=params,
                headers=headers,
                timeout=self.request_config.timeout,
            )
        except requests.Timeout as exc:
            self._log.warning("request to %s timed out", self.base_url)
            raise TransportError("timeout") from exc
        except requests.RequestException as exc:
            self._log.warning("failed to send request to %s: %s", self.base_url, exc)
            raise TransportError("request failed") from exc
        self.throttle.touch()
        return response

    def _handle_response(self, response: Response, key: CacheKey) -> T:
        status = response.status_code
        outcome = classify(status, rate_limit_fatal=self.rate_limit_fatal)

        if outcome is Outcome.SERVER_RETRYABLE:
            self._log.warning("server error %s from %s", status, self.base_url)
            raise ServerRetryable(f"server error {status}", status_code=status)

        if outcome is Outcome.CLIENT_RETRYABLE:
            if status == 429:
                self._log.warning("throttled by %s", self.base_url)
                raise QuotaExceeded("rate limited", status_code=status)
            self._log_client_error(response)
            raise ClientRetryable(f"client error {status}", status_code=status)

        if outcome is Outcome.CLIENT_FATAL:
            body = None
            if status == 429:
                self._log.error("%s rejected the request with 429", self.name)
                self._log.error("  |>> %s", self.rate_limit_hint)
            elif status == 403:
                self._log.error("access forbidden: %s", self.base_url)
                self._log.error("  |>> %s", self.forbidden_hint)
            else:
                body = response.text
                self._log.error("bad request: %s", response.url)
                self._log.error("%s", body)
            raise ClientFatal(f"client error {status}", status_code=status, body=body)

        if outcome in (Outcome.NOT_MODIFIED, Outcome.REDIRECT_OTHER):
            if outcome is Outcome.REDIRECT_OTHER:
                self._log.warning("unhandled http status %s from %s", status, self.base_url)
            expires = response.headers.get("Expires")
            entry = self.cache.revalidate(key, expires)
            if entry is None:
                raise UnknownStatus(f"status {status} without a cached result", status_code=status)
            self._log.info("%s using cached result (data not modified), expires header: %s", self.name, expires)
            return entry.result

        if outcome is Outcome.SUCCESS:
            if status == 203:
                self._log.warning("deprecated service or api: %s", self.base_url)
                self._log.warning("  |>> options: update the provider adapter or report an issue")
            result = self._decode(response)
            expires = response.headers.get("Expires")
            self._log.debug("caching result, expires header: %s", expires)
            self.cache.store(key, result, expires, response.headers.get("Last-Modified"))
            return result

        raise UnknownStatus(f"{self.name} unknown error (status {status})", status_code=status)

    def _decode(self, response: Response) -> T:
        try:
            return self.response_model.model_validate_json(response.content)
        except ValidationError as exc:
            self._log.error("failed to parse response from %s", self.base_url, exc_info=exc)
            raise DecodeError("invalid response body", status_code=response.status_code) from exc


__all__ = [
    "ClientFatal",
    "ClientRetryable",
    "DecodeError",
    "ErrorClass",
    "Outcome",
    "ProviderError",
    "QuotaExceeded",
    "RequestConfig",
    "ServerRetryable",
    "TransportError",
    "UnknownStatus",
    "WeatherProvider",
    "classify",
]
