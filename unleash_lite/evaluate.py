"""
Flag evaluation.

Defines the context and result types, the interface an evaluation engine must
satisfy, and ``YggdrasilEngine``, the default engine backed by Unleash's
shared evaluation core.
"""

import json
import logging
import threading
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Protocol, Union

from yggdrasil_engine.engine import UnleashEngine

from unleash_lite.errors import HydrationWarning

logger = logging.getLogger("unleash_lite.evaluate")


@dataclass
class Context:
    """Evaluation context for targeting."""

    user_id: Optional[str] = None
    session_id: Optional[str] = None
    remote_address: Optional[str] = None
    environment: Optional[str] = None
    app_name: Optional[str] = None
    current_time: Optional[str] = None
    properties: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Context":
        """Build a context from snake_case or camelCase keys."""
        known = {f.name for f in fields(cls)}
        aliases = {
            "userId": "user_id",
            "sessionId": "session_id",
            "remoteAddress": "remote_address",
            "appName": "app_name",
            "currentTime": "current_time",
        }
        kwargs: Dict[str, Any] = {}
        properties: Dict[str, str] = dict(data.get("properties") or {})
        for key, value in data.items():
            if key == "properties":
                continue
            name = aliases.get(key, key)
            if name in known:
                kwargs[name] = value
            else:
                properties[key] = value
        return cls(properties=properties, **kwargs)

    def enriched(self, app_name: str, environment: str) -> "Context":
        """Return a copy with ``app_name``/``environment`` filled where unset."""
        return replace(
            self,
            app_name=self.app_name if self.app_name is not None else app_name,
            environment=self.environment if self.environment is not None else environment,
            properties=dict(self.properties),
        )

    def to_engine_context(self) -> Dict[str, Any]:
        """Wire form of the context; unset fields are left out."""
        builtin = {
            "userId": self.user_id,
            "sessionId": self.session_id,
            "remoteAddress": self.remote_address,
            "environment": self.environment,
            "appName": self.app_name,
            "currentTime": self.current_time,
        }
        data: Dict[str, Any] = {k: str(v) for k, v in builtin.items() if v is not None}
        data["properties"] = {str(k): str(v) for k, v in self.properties.items() if v is not None}
        return data


ContextLike = Union[Context, Mapping[str, Any], None]


def to_context(context: ContextLike) -> Context:
    """Coerce ``None``, a mapping or a ``Context`` into a ``Context``."""
    if context is None:
        return Context()
    if isinstance(context, Context):
        return context
    return Context.from_dict(context)


@dataclass
class Variant:
    """Result of a variant lookup."""

    name: str
    enabled: bool
    payload: Optional[Dict[str, Any]] = None
    feature_enabled: bool = False

    def to_dict(self) -> dict:
        result = {
            "name": self.name,
            "enabled": self.enabled,
            "feature_enabled": self.feature_enabled,
        }
        if self.payload is not None:
            result["payload"] = self.payload
        return result


DISABLED_VARIANT_NAME = "disabled"


def disabled_variant(feature_enabled: bool = False) -> Variant:
    return Variant(name=DISABLED_VARIANT_NAME, enabled=False, feature_enabled=feature_enabled)


@dataclass
class ResolvedFlag:
    """A flag resolved against a context by ``resolve_all``."""

    enabled: bool
    impression_data: bool
    project: str
    variant: Variant

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "impressionData": self.impression_data,
            "project": self.project,
            "variant": self.variant.to_dict(),
        }


@dataclass
class ToggleCounts:
    """Evaluation counters for a single flag."""

    yes: int = 0
    no: int = 0
    variants: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"yes": self.yes, "no": self.no, "variants": dict(self.variants)}


@dataclass
class MetricsBucket:
    """Counts accumulated over one reporting window."""

    start: datetime
    stop: datetime
    toggles: Dict[str, ToggleCounts] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "start": self.start.isoformat(),
            "stop": self.stop.isoformat(),
            "toggles": {name: counts.to_dict() for name, counts in self.toggles.items()},
        }


class EvaluationEngine(Protocol):
    """Interface of the component that evaluates flags against a dataset."""

    def apply_state(self, dataset: Mapping[str, Any]) -> Optional[List[HydrationWarning]]:
        ...

    def is_enabled(self, name: str, context: Context) -> bool:
        ...

    def get_variant(self, name: str, context: Context) -> Variant:
        ...

    def resolve_all(self, context: Context) -> Dict[str, ResolvedFlag]:
        ...

    def get_metrics(self) -> Optional[MetricsBucket]:
        ...



# -- default engine --


def check_feature(entry: Any) -> Dict[str, Any]:
    """
    Check the shape of one feature entry and return a copy the engine accepts.

    Only container and scalar types are checked here; what the entry means is
    left to the evaluation core.

    Raises:
        ValueError: If the entry is malformed
    """
    if not isinstance(entry, dict):
        raise ValueError("feature entry is not an object")
    name = entry.get("name")
    if not isinstance(name, str) or not name:
        raise ValueError("feature has no name")
    enabled = entry.get("enabled", False)
    if not isinstance(enabled, bool):
        raise ValueError(f"feature {name!r} has a non-boolean 'enabled'")

    feature = dict(entry)
    feature["enabled"] = enabled
    feature["strategies"] = [_check_strategy(s) for s in _list_of(entry, "strategies")]
    feature["variants"] = [_check_variant(v) for v in _list_of(entry, "variants")]
    return feature


def _list_of(data: Mapping[str, Any], key: str) -> List[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"'{key}' is not a list")
    return value


def _check_strategy(data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict) or not isinstance(data.get("name"), str):
        raise ValueError("strategy entry is malformed")
    parameters = data.get("parameters") or {}
    if not isinstance(parameters, dict):
        raise ValueError(f"parameters of strategy {data['name']!r} are not an object")

    strategy = dict(data)
    strategy["parameters"] = {str(k): str(v) for k, v in parameters.items()}
    strategy["constraints"] = [_check_constraint(c) for c in _list_of(data, "constraints")]
    strategy["variants"] = [_check_variant(v) for v in _list_of(data, "variants")]
    return strategy


def _check_constraint(data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ValueError("constraint entry is not an object")
    if not isinstance(data.get("contextName"), str) or not isinstance(data.get("operator"), str):
        raise ValueError("constraint needs a contextName and an operator")
    for flag in ("inverted", "caseInsensitive"):
        if not isinstance(data.get(flag, False), bool):
            raise ValueError(f"constraint flag '{flag}' is not a boolean")

    constraint = dict(data)
    constraint["values"] = [str(v) for v in _list_of(data, "values")]
    if data.get("value") is not None:
        constraint["value"] = str(data["value"])
    return constraint


def _check_variant(data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict) or not isinstance(data.get("name"), str):
        raise ValueError("variant entry is malformed")
    name = data["name"]
    weight = data.get("weight", 0)
    if isinstance(weight, bool) or not isinstance(weight, int):
        raise ValueError(f"variant {name!r} has a non-integer weight")
    payload = data.get("payload")
    if payload is not None and not isinstance(payload, dict):
        raise ValueError(f"payload of variant {name!r} is not an object")
    for override in _list_of(data, "overrides"):
        if (
            not isinstance(override, dict)
            or not isinstance(override.get("contextName"), str)
            or not isinstance(override.get("values", []), list)
        ):
            raise ValueError(f"override of variant {name!r} is malformed")

    variant = dict(data)
    variant["weight"] = weight
    return variant


class YggdrasilEngine:
    """
    Default evaluation engine, an adapter over ``yggdrasil_engine.UnleashEngine``.

    Strategies, constraints, stickiness hashing and variant selection all come
    from the shared Unleash core, so results match other Unleash SDKs on the
    same dataset. Entries are shape-checked before they reach the core: a
    malformed feature is dropped with a warning and the rest still load.

    Example:
        ```python
        engine = YggdrasilEngine()
        engine.apply_state({"version": 2, "features": [...]})

        engine.is_enabled("my-feature", Context(user_id="user-123"))
        bucket = engine.get_metrics()
        ```
    """

    def __init__(self, engine: Optional[UnleashEngine] = None):
        self._engine = engine if engine is not None else UnleashEngine()
        self._features: Dict[str, Dict[str, Any]] = {}
        self._window_start = datetime.now(timezone.utc)
        self._window_lock = threading.Lock()

    def apply_state(self, dataset: Mapping[str, Any]) -> Optional[List[HydrationWarning]]:
        """
        Replace all features.

        Malformed entries are dropped with a warning. If the core rejects the
        dataset as a whole, the previous features stay active.
        """
        warnings: List[HydrationWarning] = []
        features: Dict[str, Dict[str, Any]] = {}

        entries = dataset.get("features") if isinstance(dataset, Mapping) else None
        if not isinstance(entries, list):
            warnings.append(HydrationWarning("dataset has no feature list"))
            entries = []

        for entry in entries:
            name = entry.get("name") if isinstance(entry, dict) else None
            try:
                feature = check_feature(entry)
            except ValueError as e:
                warnings.append(HydrationWarning(str(e), feature=name))
                continue
            features[feature["name"]] = feature

        state = dict(dataset) if isinstance(dataset, Mapping) else {}
        if not isinstance(state.get("version"), int):
            state["version"] = 2
        state["features"] = list(features.values())

        try:
            core_warnings = self._engine.take_state(json.dumps(state))
        except Exception as e:
            logger.debug(f"Evaluation core rejected dataset: {e}")
            warnings.append(HydrationWarning(f"dataset rejected by the evaluation core: {e}"))
            return warnings

        if core_warnings:
            if not isinstance(core_warnings, list):
                core_warnings = [core_warnings]
            warnings.extend(HydrationWarning(str(w)) for w in core_warnings)

        self._features = features
        return warnings or None

    def is_enabled(self, name: str, context: Context) -> bool:
        enabled = bool(self._engine.is_enabled(name, context.to_engine_context()))
        self._engine.count_toggle(name, enabled)
        return enabled

    def get_variant(self, name: str, context: Context) -> Variant:
        variant = self._resolve_variant(name, context.to_engine_context())
        self._engine.count_toggle(name, variant.feature_enabled)
        self._engine.count_variant(name, variant.name)
        return variant

    def resolve_all(self, context: Context) -> Dict[str, ResolvedFlag]:
        """Resolve every known flag; nothing is counted."""
        engine_context = context.to_engine_context()
        resolved = {}
        for name, feature in self._features.items():
            resolved[name] = ResolvedFlag(
                enabled=bool(self._engine.is_enabled(name, engine_context)),
                impression_data=bool(feature.get("impressionData", False)),
                project=feature.get("project") or "default",
                variant=self._resolve_variant(name, engine_context),
            )
        return resolved

    def get_metrics(self) -> Optional[MetricsBucket]:
        """Drain the counters accumulated since the previous call."""
        bucket = self._engine.get_metrics()
        now = datetime.now(timezone.utc)
        with self._window_lock:
            start, self._window_start = self._window_start, now

        toggles = (bucket or {}).get("toggles") or {}
        if not toggles:
            return None
        return MetricsBucket(
            start=start,
            stop=now,
            toggles={
                name: ToggleCounts(
                    yes=int(counts.get("yes", 0)),
                    no=int(counts.get("no", 0)),
                    variants=dict(counts.get("variants") or {}),
                )
                for name, counts in toggles.items()
            },
        )

    @property
    def feature_names(self) -> List[str]:
        return list(self._features)

    def _resolve_variant(self, name: str, engine_context: Dict[str, Any]) -> Variant:
        resolved = self._engine.get_variant(name, engine_context)
        if resolved is None:
            return disabled_variant(feature_enabled=False)
        return Variant(
            name=resolved.name,
            enabled=resolved.enabled,
            payload=resolved.payload,
            feature_enabled=resolved.feature_enabled,
        )
