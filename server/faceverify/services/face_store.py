"""
Append-only collection of previously seen face descriptors.

Rows live in a Supabase table (default ``faces``) with a ``descriptor``
column. Only ``list_all`` and ``append`` are exposed: nothing here updates
or deletes a stored face.
"""
from __future__ import annotations

import json
import logging
import threading
from typing import Any, Protocol, Sequence

from faceverify.errors import StoreReadFailure, StoreWriteFailure

logger = logging.getLogger(__name__)


class FaceStore(Protocol):
    def list_all(self) -> list[tuple[float, ...]]: ...

    def append(self, embedding: Sequence[float]) -> None: ...


def decode_descriptor(raw: Any) -> tuple[float, ...]:
    """
    Turn a stored ``descriptor`` value back into floats.

    Accepts a JSON array, an object keyed by index ({"0": .., "1": ..}, the
    shape a browser Float32Array serialises to) or a pgvector text literal
    such as "[0.1,0.2]".
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValueError(f"descriptor is not valid JSON: {raw[:40]!r}") from exc

    if isinstance(raw, dict):
        try:
            ordered = sorted(raw.items(), key=lambda item: int(item[0]))
        except (TypeError, ValueError) as exc:
            raise ValueError("descriptor object keys must be integer indexes") from exc
        raw = [value for _, value in ordered]

    if not isinstance(raw, (list, tuple)):
        raise ValueError(f"unsupported descriptor type: {type(raw).__name__}")
    return tuple(float(value) for value in raw)


class SupabaseFaceStore:
    def __init__(self, client, table: str = "faces") -> None:
        self.client = client
        self.table = table

    def list_all(self) -> list[tuple[float, ...]]:
        try:
            result = self.client.table(self.table).select("descriptor").execute()
        except Exception as exc:
            raise StoreReadFailure(f"select from {self.table} failed: {exc}") from exc

        embeddings = []
        for row in result.data or []:
            try:
                embeddings.append(decode_descriptor(row.get("descriptor")))
            except ValueError as exc:
                raise StoreReadFailure(f"unreadable descriptor in {self.table}: {exc}") from exc
        logger.debug("[store] fetched %d descriptors from %s", len(embeddings), self.table)
        return embeddings

    def append(self, embedding: Sequence[float]) -> None:
        payload = {"descriptor": [float(value) for value in embedding]}
        try:
            self.client.table(self.table).insert(payload).execute()
        except Exception as exc:
            raise StoreWriteFailure(f"insert into {self.table} failed: {exc}") from exc
        logger.info("[store] appended descriptor to %s", self.table)


class InMemoryFaceStore:
    """Process-local store for local runs and tests (FACE_STORE=memory)."""

    def __init__(self, embeddings: Sequence[Sequence[float]] = ()) -> None:
        self._lock = threading.Lock()
        self._rows: list[tuple[float, ...]] = [tuple(float(v) for v in e) for e in embeddings]

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)

    def list_all(self) -> list[tuple[float, ...]]:
        with self._lock:
            return list(self._rows)

    def append(self, embedding: Sequence[float]) -> None:
        with self._lock:
            self._rows.append(tuple(float(value) for value in embedding))
