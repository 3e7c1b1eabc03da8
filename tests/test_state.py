"""Tests for the evaluation state holder."""

import threading
import time

import pytest
from unleash_lite.errors import HydrationWarning
from unleash_lite.evaluate import Context, Variant
from unleash_lite.state import EvaluationState, ReadWriteLock


def env_dataset():
    """A feature enabled only for environment 'dev' and app 'my-app'."""
    return {
        "version": 2,
        "features": [
            {
                "name": "env-flag",
                "enabled": True,
                "strategies": [{
                    "name": "default",
                    "constraints": [{"contextName": "environment", "operator": "IN", "values": ["dev"]}],
                }],
            },
            {
                "name": "app-flag",
                "enabled": True,
                "strategies": [{
                    "name": "default",
                    "constraints": [{"contextName": "appName", "operator": "IN", "values": ["my-app"]}],
                }],
            },
        ],
    }


class SlowEngine:
    """Engine whose state update is split in two halves with a pause between."""

    def __init__(self):
        self.first = 0
        self.second = 0

    def apply_state(self, dataset):
        self.first = dataset["generation"]
        time.sleep(0.05)
        self.second = dataset["generation"]
        return [HydrationWarning("slow")] if dataset.get("warn") else None

    def is_enabled(self, name, context):
        return self.first == self.second

    def get_variant(self, name, context):
        return Variant(name=str(self.first), enabled=self.first == self.second)

    def resolve_all(self, context):
        return {}

    def get_metrics(self):
        return None


class TestContextEnrichment:
    """Tests for filling app name and environment into contexts."""

    @pytest.fixture
    def state(self):
        state = EvaluationState("my-app", "dev")
        state.ingest(env_dataset())
        return state

    def test_empty_context_gets_defaults(self, state):
        assert state.is_enabled("env-flag", Context()) is True
        assert state.is_enabled("app-flag", Context()) is True

    def test_none_and_dict_contexts(self, state):
        assert state.is_enabled("env-flag") is True
        assert state.is_enabled("app-flag", {}) is True

    def test_caller_values_take_precedence(self, state):
        assert state.is_enabled("app-flag", {"appName": "x"}) is False
        assert state.is_enabled("env-flag", {"appName": "x"}) is True
        assert state.is_enabled("env-flag", Context(environment="prod")) is False

    def test_caller_context_not_mutated(self, state):
        context = Context(app_name="x")
        state.is_enabled("env-flag", context)
        assert context.app_name == "x"
        assert context.environment is None

    def test_resolve_all_and_variant(self, state):
        resolved = state.resolve_all({})
        assert resolved["env-flag"].enabled is True
        assert state.get_variant("env-flag").feature_enabled is True


class TestEvaluationState:
    """Tests for ingest and metrics extraction."""

    def test_dataset_none_before_ingest(self):
        assert EvaluationState("my-app", "dev").dataset is None

    def test_ingest_replaces_dataset(self):
        state = EvaluationState("my-app", "dev")
        first = env_dataset()
        second = {"version": 2, "features": []}

        state.ingest(first)
        assert state.dataset is first
        assert state.is_enabled("env-flag") is True

        state.ingest(second)
        assert state.dataset is second
        assert state.is_enabled("env-flag") is False

    def test_ingest_returns_warnings(self):
        state = EvaluationState("my-app", "dev")
        warnings = state.ingest({"features": [{"enabled": True}]})
        assert warnings[0].message == "feature has no name"

    def test_extract_metrics(self):
        state = EvaluationState("my-app", "dev")
        state.ingest(env_dataset())
        state.is_enabled("env-flag")
        state.is_enabled("env-flag", {"environment": "prod"})

        bucket = state.extract_metrics()
        assert bucket.toggles["env-flag"].yes == 1
        assert bucket.toggles["env-flag"].no == 1
        assert state.extract_metrics() is None

    def test_custom_engine(self):
        engine = SlowEngine()
        state = EvaluationState("my-app", "dev", engine)
        assert state.engine is engine
        assert state.ingest({"generation": 1, "warn": True}) == [HydrationWarning("slow")]


class TestSingleWriterIsolation:
    """Reads never observe a half-applied dataset."""

    def test_reads_during_ingest_are_consistent(self):
        engine = SlowEngine()
        state = EvaluationState("my-app", "dev", engine)
        state.ingest({"generation": 1})

        observed = []
        stop = threading.Event()

        def reader():
            while not stop.is_set():
                observed.append(state.is_enabled("any"))

        readers = [threading.Thread(target=reader) for _ in range(4)]
        for t in readers:
            t.start()

        for generation in range(2, 6):
            state.ingest({"generation": generation})

        stop.set()
        for t in readers:
            t.join()

        assert observed
        assert all(observed)
        assert state.get_variant("any").name == "5"


class TestReadWriteLock:
    """Tests for ReadWriteLock."""

    def test_readers_share(self):
        lock = ReadWriteLock()
        inside = []
        barrier = threading.Barrier(3, timeout=2)

        def reader():
            with lock.read():
                inside.append(1)
                barrier.wait()

        threads = [threading.Thread(target=reader) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(inside) == 3

    def test_writer_excludes_readers(self):
        lock = ReadWriteLock()
        events = []
        writer_in = threading.Event()

        def writer():
            with lock.write():
                writer_in.set()
                time.sleep(0.05)
                events.append("write-done")

        def reader():
            writer_in.wait()
            with lock.read():
                events.append("read")

        w = threading.Thread(target=writer)
        r = threading.Thread(target=reader)
        w.start()
        r.start()
        w.join()
        r.join()

        assert events == ["write-done", "read"]
