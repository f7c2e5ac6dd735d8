"""Shared fakes for the provider and the Supabase client."""

import sys
import threading
import time
from pathlib import Path
from types import SimpleNamespace

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from faceverify.errors import ProviderUnavailable, StoreReadFailure, StoreWriteFailure
from faceverify.services.face_store import InMemoryFaceStore
from faceverify.services.workflow import VerificationWorkflow

DIM = 128


def make_embedding(value: float = 0.0, dim: int = DIM) -> tuple[float, ...]:
    return tuple([value] * dim)


def shifted(base, distance: float) -> tuple[float, ...]:
    """Copy of ``base`` moved ``distance`` along the first axis."""
    return (base[0] + distance,) + tuple(base[1:])


class FakeProvider:
    """Maps image bytes to a fixed embedding; unknown bytes mean no face."""

    def __init__(self, faces=None, fail_load=False, delay=0.0, gates=None):
        self.faces = dict(faces or {})
        self.fail_load = fail_load
        self.delay = delay
        self.gates = dict(gates or {})
        self.calls: list[bytes] = []
        self.loaded = False

    def load(self):
        if self.fail_load:
            raise ProviderUnavailable("model files missing")
        self.loaded = True

    def detect(self, image_bytes):
        self.load()
        self.calls.append(image_bytes)
        gate = self.gates.get(image_bytes)
        if gate is not None:
            gate.wait(timeout=5)
        if self.delay:
            time.sleep(self.delay)
        return self.faces.get(image_bytes)


class FailingStore(InMemoryFaceStore):
    def __init__(self, embeddings=(), fail_read=False, fail_write=False):
        super().__init__(embeddings)
        self.fail_read = fail_read
        self.fail_write = fail_write
        self.append_attempts = 0

    def list_all(self):
        if self.fail_read:
            raise StoreReadFailure("connection refused")
        return super().list_all()

    def append(self, embedding):
        self.append_attempts += 1
        if self.fail_write:
            raise StoreWriteFailure("insert rejected")
        super().append(embedding)


class FakeQuery:
    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.payload = None

    def select(self, columns):
        self.client.selects.append((self.table, columns))
        return self

    def insert(self, payload):
        self.payload = payload
        return self

    def execute(self):
        if self.client.error is not None:
            raise self.client.error
        if self.payload is not None:
            self.client.rows.append(self.payload)
            return SimpleNamespace(data=[self.payload])
        return SimpleNamespace(data=list(self.client.rows))


class FakeSupabaseClient:
    def __init__(self, rows=None, error=None):
        self.rows = list(rows or [])
        self.error = error
        self.selects = []
        self.tables = []

    def table(self, name):
        self.tables.append(name)
        return FakeQuery(self, name)


def workflow_factory(provider, store, threshold=0.6, strategy="first", timeout=2.0):
    def factory(is_current, generation):
        return VerificationWorkflow(
            provider,
            store,
            threshold=threshold,
            strategy=strategy,
            timeout=timeout,
            is_current=is_current,
            generation=generation,
        )

    return factory


@pytest.fixture
def alice():
    return make_embedding(0.1)


@pytest.fixture
def gate():
    event = threading.Event()
    yield event
    event.set()
