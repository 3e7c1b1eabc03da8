"""
unleash-lite - a small Unleash-compatible feature flag client.

Usage:
    from unleash_lite import ClientBuilder

    client = ClientBuilder().build(
        "https://unleash.example.com", "my-app", "default:production.abc123"
    )
    client.start_background()
    await client.wait_until_ready()

    if client.is_enabled("my-feature", {"userId": "user-123"}):
        # Feature is enabled
        pass

    await client.close()
"""

from unleash_lite.client import UnleashClient, ClientState
from unleash_lite.config import ClientConfig, ClientBuilder, FeaturesQuery
from unleash_lite.entity_tag import EntityTag
from unleash_lite.token import ApiToken
from unleash_lite.errors import (
    UnleashError,
    ErrorCategory,
    ValidationError,
    InvalidCredentialError,
    InvalidTagError,
    RemoteError,
    NetworkError,
    AuthenticationError,
    RateLimitError,
    NotFoundError,
    InternalError,
    HydrationWarning,
    classify_error,
)
from unleash_lite.evaluate import (
    Context,
    Variant,
    ResolvedFlag,
    MetricsBucket,
    ToggleCounts,
    EvaluationEngine,
    YggdrasilEngine,
)
from unleash_lite.state import EvaluationState, ReadWriteLock
from unleash_lite.remote import (
    RemoteClient,
    ClientIdentity,
    NotModified,
    Updated,
    SDK_VERSION,
)
from unleash_lite.metrics import RequestStats, RequestRecord, StatsSnapshot

__version__ = SDK_VERSION
__all__ = [
    # Client
    "UnleashClient",
    "ClientState",
    "ClientConfig",
    "ClientBuilder",
    "FeaturesQuery",
    # Tokens
    "ApiToken",
    "EntityTag",
    # Errors
    "UnleashError",
    "ErrorCategory",
    "ValidationError",
    "InvalidCredentialError",
    "InvalidTagError",
    "RemoteError",
    "NetworkError",
    "AuthenticationError",
    "RateLimitError",
    "NotFoundError",
    "InternalError",
    "HydrationWarning",
    "classify_error",
    # Evaluation
    "Context",
    "Variant",
    "ResolvedFlag",
    "MetricsBucket",
    "ToggleCounts",
    "EvaluationEngine",
    "YggdrasilEngine",
    "EvaluationState",
    "ReadWriteLock",
    # Remote
    "RemoteClient",
    "ClientIdentity",
    "NotModified",
    "Updated",
    # Stats
    "RequestStats",
    "RequestRecord",
    "StatsSnapshot",
]
