"""
Face detection and 128-d encoding via face_recognition (dlib).

Interface contract:
    - FaceRecognitionProvider.detect(image_bytes) -> tuple[float, ...] | None
      None means the image holds no face; ProviderUnavailable means the
      model could not be loaded and must not be read as "no face".
"""
from __future__ import annotations

import io
import logging
import threading
from typing import Optional, Protocol

import numpy as np
from PIL import Image, UnidentifiedImageError

from faceverify.errors import InvalidImage, ProviderUnavailable

logger = logging.getLogger(__name__)


class EmbeddingProvider(Protocol):
    def load(self) -> None: ...

    def detect(self, image_bytes: bytes) -> Optional[tuple[float, ...]]: ...


def bytes_to_numpy_rgb(image_bytes: bytes) -> np.ndarray:
    """Decode an uploaded image to an RGB numpy array.
    Required format for the face_recognition library.
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as pil_image:
            return np.array(pil_image.convert("RGB"))
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise InvalidImage(f"could not decode image: {exc}") from exc


def _largest_face(locations: list[tuple[int, int, int, int]]):
    if not locations:
        return None
    # face_recognition locations are (top, right, bottom, left)
    return max(
        locations,
        key=lambda loc: (loc[2] - loc[0]) * (loc[1] - loc[3]),
    )


class FaceRecognitionProvider:
    def __init__(self, detection_model: str = "hog", upsample: int = 1) -> None:
        self.detection_model = detection_model
        self.upsample = upsample
        self._backend = None
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._backend is not None

    def load(self) -> None:
        """Import face_recognition and its dlib model files. Safe to call repeatedly."""
        with self._lock:
            if self._backend is not None:
                return
            try:
                import face_recognition
            except Exception as exc:  # missing dlib build or model package
                # Not cached: the next request tries again.
                raise ProviderUnavailable(f"face_recognition failed to load: {exc}") from exc
            self._backend = face_recognition
            logger.info("[face] face_recognition loaded (detector=%s)", self.detection_model)

    def detect(self, image_bytes: bytes) -> Optional[tuple[float, ...]]:
        self.load()
        image = bytes_to_numpy_rgb(image_bytes)

        locations = self._backend.face_locations(
            image,
            number_of_times_to_upsample=self.upsample,
            model=self.detection_model,
        )
        location = _largest_face(locations)
        if location is None:
            return None

        encodings = self._backend.face_encodings(image, known_face_locations=[location])
        if not encodings:
            return None
        if len(locations) > 1:
            logger.info("[face] %d faces found, using the largest", len(locations))
        return tuple(float(value) for value in encodings[0])
