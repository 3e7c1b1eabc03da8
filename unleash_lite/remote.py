"""
HTTP client for the feature server's client API.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Union

import httpx

from unleash_lite.entity_tag import EntityTag
from unleash_lite.errors import (
    InvalidTagError,
    NetworkError,
    RemoteError,
    RateLimitError,
    classify_error,
)
from unleash_lite.evaluate import MetricsBucket
from unleash_lite.metrics import RequestRecord, RequestStats

logger = logging.getLogger("unleash_lite.remote")

SDK_NAME = "unleash-lite"
SDK_VERSION = "0.1.0"
SUPPORTED_SPEC_VERSION = "5.1.0"

APPNAME_HEADER = "UNLEASH-APPNAME"
INSTANCE_ID_HEADER = "UNLEASH-INSTANCEID"
CLIENT_SPEC_HEADER = "Unleash-Client-Spec"

FEATURES_PATH = "/api/client/features"
REGISTER_PATH = "/api/client/register"
METRICS_PATH = "/api/client/metrics"


@dataclass(frozen=True)
class ClientIdentity:
    """Who this client is; attached to every outbound call."""

    app_name: str
    environment: str
    instance_id: Optional[str] = None
    sdk_version: str = f"{SDK_NAME}:{SDK_VERSION}"


@dataclass
class NotModified:
    """The server's dataset matches the tag we already hold."""

    etag: EntityTag


@dataclass
class Updated:
    """A new dataset, with the tag to send on the next fetch if any."""

    dataset: Dict[str, Any]
    etag: Optional[EntityTag] = None


FeaturesResponse = Union[NotModified, Updated]


class RemoteClient:
    """
    Issues the client API calls: fetch features, register, push metrics.

    No retries are attempted; failures surface as ``RemoteError`` and the
    caller decides when to try again.
    """

    def __init__(
        self,
        url: str,
        identity: ClientIdentity,
        api_token: str,
        timeout: float = 5.0,
    ):
        self._url = url.rstrip("/")
        self._identity = identity
        self._stats = RequestStats()

        headers = {
            APPNAME_HEADER: identity.app_name,
            CLIENT_SPEC_HEADER: SUPPORTED_SPEC_VERSION,
            "Authorization": api_token,
            "User-Agent": identity.sdk_version,
        }
        if identity.instance_id:
            headers[INSTANCE_ID_HEADER] = identity.instance_id

        self._http_client = httpx.AsyncClient(headers=headers, timeout=timeout)

    @property
    def identity(self) -> ClientIdentity:
        return self._identity

    async def fetch_features(
        self,
        etag: Optional[EntityTag] = None,
        query: Optional[Mapping[str, Any]] = None,
    ) -> FeaturesResponse:
        """
        Fetch the feature dataset, conditionally on a known entity tag.

        Args:
            etag: Tag of the dataset we already hold
            query: Extra query parameters for the features endpoint

        Returns:
            ``NotModified`` if the server confirmed our tag, else ``Updated``

        Raises:
            RemoteError: On transport failure, timeout, non-success status or bad body
        """
        headers = {}
        if etag is not None:
            headers["If-None-Match"] = str(etag)

        response = await self._send(
            "GET",
            FEATURES_PATH,
            params=dict(query) if query else None,
            headers=headers,
        )

        if response.status_code == 304:
            if etag is None:
                raise RemoteError(
                    "Server answered 304 Not Modified to an unconditional request",
                    status_code=304,
                )
            return NotModified(etag)

        try:
            dataset = response.json()
        except ValueError as e:
            raise classify_error(e) from e

        if not isinstance(dataset, dict):
            raise RemoteError("Feature response is not a JSON object")

        return Updated(dataset, _parse_etag(response.headers.get("etag")))

    async def register(self, interval: float) -> None:
        """
        Announce this instance to the server.

        Raises:
            RemoteError: If the request fails
        """
        payload = {
            "appName": self._identity.app_name,
            "instanceId": self._identity.instance_id,
            "environment": self._identity.environment,
            "interval": int(interval),
            "sdkVersion": self._identity.sdk_version,
            "started": datetime.now(timezone.utc).isoformat(),
            "strategies": [],
        }
        await self._send("POST", REGISTER_PATH, json=payload)

    async def push_metrics(self, bucket: MetricsBucket) -> None:
        """
        Deliver one metrics bucket.

        Raises:
            RemoteError: If the request fails
        """
        payload = {
            "appName": self._identity.app_name,
            "instanceId": self._identity.instance_id,
            "environment": self._identity.environment,
            "bucket": bucket.to_dict(),
        }
        await self._send("POST", METRICS_PATH, json=payload)

    def get_stats(self) -> RequestStats:
        return self._stats

    async def close(self) -> None:
        await self._http_client.aclose()

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send a request, record it, and map failures to ``RemoteError``."""
        started = time.perf_counter()
        try:
            response = await self._http_client.request(method, f"{self._url}{path}", **kwargs)
        except httpx.TransportError as e:
            error = NetworkError(str(e) or e.__class__.__name__, cause=e)
            self._record(path, None, started, error=error)
            raise error from e
        except httpx.HTTPError as e:
            error = classify_error(e)
            self._record(path, None, started, error=error)
            raise error from e

        if response.status_code == 304:
            self._record(path, 304, started, not_modified=True)
            return response

        if not response.is_success:
            error = _status_error(response)
            self._record(path, response.status_code, started, error=error)
            raise error

        self._record(path, response.status_code, started)
        return response

    def _record(
        self,
        path: str,
        status_code: Optional[int],
        started: float,
        not_modified: bool = False,
        error: Optional[RemoteError] = None,
    ) -> None:
        self._stats.record(RequestRecord(
            endpoint=path,
            status_code=status_code,
            latency_ms=(time.perf_counter() - started) * 1000,
            not_modified=not_modified,
            error_category=error.category.value if error else None,
        ))


def _status_error(response: httpx.Response) -> RemoteError:
    message = f"{response.request.method} {response.request.url.path} failed: {response.status_code}"
    if response.status_code == 429:
        retry_after = response.headers.get("Retry-After")
        return RateLimitError(
            message,
            retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
        )
    cause = httpx.HTTPStatusError(message, request=response.request, response=response)
    return classify_error(cause, response.status_code)


def _parse_etag(header: Optional[str]) -> Optional[EntityTag]:
    if not header:
        return None
    try:
        return EntityTag.parse(header)
    except InvalidTagError:
        logger.debug(f"Ignoring unparsable ETag header {header!r}")
        return None
