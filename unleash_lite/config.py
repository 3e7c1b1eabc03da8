"""Configuration and builder for the unleash-lite client."""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Union
from urllib.parse import urlparse

from unleash_lite.errors import ValidationError
from unleash_lite.evaluate import EvaluationEngine
from unleash_lite.token import ApiToken

if TYPE_CHECKING:
    from unleash_lite.client import UnleashClient

DEFAULT_REFRESH_INTERVAL = 15.0  # seconds
DEFAULT_REQUEST_TIMEOUT = 5.0  # seconds


@dataclass
class FeaturesQuery:
    """Server-side filter applied when fetching features."""

    project: List[str] = field(default_factory=list)
    """Only fetch features belonging to these projects."""

    name_prefix: Optional[str] = None
    """Only fetch features whose name starts with this prefix."""

    def to_params(self) -> Dict[str, Union[str, List[str]]]:
        params: Dict[str, Union[str, List[str]]] = {}
        if self.project:
            params["project"] = list(self.project)
        if self.name_prefix:
            params["namePrefix"] = self.name_prefix
        return params


@dataclass
class ClientConfig:
    """Configuration for the unleash-lite client."""

    url: str
    """Base URL of the feature server, e.g. ``https://unleash.example.com``."""

    app_name: str
    """Application name reported to the server."""

    api_token: str
    """Client API token, ``<project>:<environment>.<key>``."""

    instance_id: Optional[str] = None
    """Identifier of this process, reported to the server when set."""

    refresh_interval: float = DEFAULT_REFRESH_INTERVAL
    """Seconds between refresh cycles."""

    features_query: Optional[FeaturesQuery] = None
    """Optional filter for the features endpoint."""

    disable_metrics: bool = False
    """Skip registration and metrics reporting."""

    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    """Timeout for each request in seconds."""

    def validate(self) -> ApiToken:
        """
        Validate the configuration.

        Returns:
            The parsed API token

        Raises:
            ValidationError: If a field is invalid
            InvalidCredentialError: If the API token cannot be parsed
        """
        parsed = urlparse(self.url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationError(f"url must be an absolute http(s) URL, got {self.url!r}")
        if not self.app_name:
            raise ValidationError("app_name is required")
        if self.refresh_interval <= 0:
            raise ValidationError("refresh_interval must be positive")
        if self.request_timeout <= 0:
            raise ValidationError("request_timeout must be positive")
        return ApiToken.parse(self.api_token)

    @property
    def base_url(self) -> str:
        return self.url.rstrip("/")


class ClientBuilder:
    """
    Assembles an ``UnleashClient`` from optional settings.

    Example:
        ```python
        client = (
            ClientBuilder()
            .instance_id("worker-1")
            .refresh_interval(30)
            .build("https://unleash.example.com", "my-app", token)
        )
        ```
    """

    def __init__(self):
        self._instance_id: Optional[str] = None
        self._refresh_interval: float = DEFAULT_REFRESH_INTERVAL
        self._features_query: Optional[FeaturesQuery] = None
        self._disable_metrics = False
        self._request_timeout: float = DEFAULT_REQUEST_TIMEOUT
        self._engine: Optional[EvaluationEngine] = None

    def instance_id(self, instance_id: str) -> "ClientBuilder":
        self._instance_id = instance_id
        return self

    def refresh_interval(self, seconds: float) -> "ClientBuilder":
        self._refresh_interval = seconds
        return self

    def features_query(self, query: FeaturesQuery) -> "ClientBuilder":
        self._features_query = query
        return self

    def disable_metrics(self, disable: bool = True) -> "ClientBuilder":
        self._disable_metrics = disable
        return self

    def request_timeout(self, seconds: float) -> "ClientBuilder":
        self._request_timeout = seconds
        return self

    def engine(self, engine: EvaluationEngine) -> "ClientBuilder":
        """Use a custom evaluation engine instead of ``YggdrasilEngine``."""
        self._engine = engine
        return self

    def config(self, url: str, app_name: str, api_token: str) -> ClientConfig:
        return ClientConfig(
            url=url,
            app_name=app_name,
            api_token=api_token,
            instance_id=self._instance_id,
            refresh_interval=self._refresh_interval,
            features_query=self._features_query,
            disable_metrics=self._disable_metrics,
            request_timeout=self._request_timeout,
        )

    def build(self, url: str, app_name: str, api_token: str) -> "UnleashClient":
        """
        Build the client.

        Raises:
            ValidationError: If the configuration is invalid
            InvalidCredentialError: If the API token cannot be parsed
        """
        from unleash_lite.client import UnleashClient

        return UnleashClient(self.config(url, app_name, api_token), engine=self._engine)
