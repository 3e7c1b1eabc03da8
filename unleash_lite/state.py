"""
Evaluation state shared between the refresh loop and flag readers.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional

from unleash_lite.errors import HydrationWarning
from unleash_lite.evaluate import (
    ContextLike,
    EvaluationEngine,
    YggdrasilEngine,
    MetricsBucket,
    ResolvedFlag,
    Variant,
    to_context,
)

logger = logging.getLogger("unleash_lite.state")


class ReadWriteLock:
    """
    Many concurrent readers or a single writer.

    Writers are preferred: once a writer is waiting, new readers queue behind
    it so a refresh is never starved by a steady stream of reads.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class EvaluationState:
    """
    Owns the evaluation engine and the dataset it was last loaded with.

    Reads run concurrently under the read lock; ``ingest`` holds the write
    lock, so readers observe either the previous dataset or the new one.
    """

    def __init__(
        self,
        app_name: str,
        environment: str,
        engine: Optional[EvaluationEngine] = None,
    ):
        self._app_name = app_name
        self._environment = environment
        self._engine: EvaluationEngine = engine if engine is not None else YggdrasilEngine()
        self._dataset: Optional[Mapping[str, Any]] = None
        self._lock = ReadWriteLock()

    @property
    def dataset(self) -> Optional[Mapping[str, Any]]:
        """The dataset most recently ingested, or None."""
        with self._lock.read():
            return self._dataset

    @property
    def engine(self) -> EvaluationEngine:
        return self._engine

    def ingest(self, dataset: Mapping[str, Any]) -> Optional[List[HydrationWarning]]:
        """
        Replace the engine's state with a new dataset.

        Returns:
            Hydration warnings reported by the engine, if any
        """
        with self._lock.write():
            warnings = self._engine.apply_state(dataset)
            self._dataset = dataset
        logger.debug("Ingested dataset with %d warning(s)", len(warnings or []))
        return warnings

    def extract_metrics(self) -> Optional[MetricsBucket]:
        """Drain the engine's evaluation counters."""
        with self._lock.read():
            return self._engine.get_metrics()

    def is_enabled(self, name: str, context: ContextLike = None) -> bool:
        ctx = self._enrich(context)
        with self._lock.read():
            return self._engine.is_enabled(name, ctx)

    def get_variant(self, name: str, context: ContextLike = None) -> Variant:
        ctx = self._enrich(context)
        with self._lock.read():
            return self._engine.get_variant(name, ctx)

    def resolve_all(self, context: ContextLike = None) -> Dict[str, ResolvedFlag]:
        ctx = self._enrich(context)
        with self._lock.read():
            return self._engine.resolve_all(ctx)

    def _enrich(self, context: ContextLike):
        return to_context(context).enriched(self._app_name, self._environment)
