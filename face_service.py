"""
Face cropping and face comparison.

Detection and embedding go through DeepFace; everything after the
embedding (distance, similarity, tiering) is plain numpy and is what the
UI shows. No face on either side is an ordinary outcome, reported as
None plus a notice rather than an exception.
"""
import logging
from typing import Optional, Tuple

import cv2
import numpy as np
from PIL import Image

from models import BoundingBox, FaceCrop, SimilarityResult

logger = logging.getLogger(__name__)

MARGIN_X = 0.3
MARGIN_Y = 0.4

DISTANCE_SATURATION = 1.0
HIGH_THRESHOLD = 70
MEDIUM_THRESHOLD = 50

NO_FACE_NOTICE = "No face detected"
COMPARISON_UNAVAILABLE = "Face comparison unavailable: no face found in one of the images"

MODES = ("upload", "live")


def _to_bgr(image: Image.Image) -> np.ndarray:
    # DeepFace treats numpy input as OpenCV BGR
    return cv2.cvtColor(np.asarray(image.convert("RGB")), cv2.COLOR_RGB2BGR)


class FaceEngine:
    """DeepFace-backed detector and embedder."""

    def __init__(self, model_name: str = "Facenet", detector_backend: str = "opencv",
                 min_confidence: float = 0.5):
        self.model_name = model_name
        self.detector_backend = detector_backend
        self.min_confidence = min_confidence

    def detect_face(self, image: Image.Image) -> Optional[BoundingBox]:
        """Bounding box of the most confident face, or None."""
        from deepface import DeepFace

        try:
            faces = DeepFace.extract_faces(
                img_path=_to_bgr(image),
                detector_backend=self.detector_backend,
                enforce_detection=True,
                align=False,
            )
        except ValueError as e:
            logger.info("No face detected: %s", e)
            return None

        faces = [f for f in faces if f.get("confidence", 0) >= self.min_confidence]
        if not faces:
            return None
        face = max(faces, key=lambda f: f.get("confidence", 0))
        area = face.get("facial_area", {})
        return BoundingBox(
            x=float(area.get("x", 0)),
            y=float(area.get("y", 0)),
            width=float(area.get("w", 0)),
            height=float(area.get("h", 0)),
        )

    def embed(self, image: Image.Image) -> Optional[np.ndarray]:
        """L2-normalised face descriptor, or None when no face is found."""
        from deepface import DeepFace

        try:
            reps = DeepFace.represent(
                img_path=_to_bgr(image),
                model_name=self.model_name,
                detector_backend=self.detector_backend,
                enforce_detection=True,
            )
        except ValueError as e:
            logger.info("No face to embed: %s", e)
            return None

        if isinstance(reps, dict):
            reps = [reps]
        if not reps:
            return None
        embedding = np.asarray(reps[0]["embedding"], dtype=np.float32)
        norm = np.linalg.norm(embedding)
        if norm == 0:
            return None
        return embedding / norm

    def distance(self, a: np.ndarray, b: np.ndarray) -> float:
        return float(np.linalg.norm(np.asarray(a) - np.asarray(b)))


def crop_with_margin(image: Image.Image, box: BoundingBox) -> FaceCrop:
    """Crop ``box`` widened by 30% of its width per side and 40% of its height per side."""
    margin_x = box.width * MARGIN_X
    margin_y = box.height * MARGIN_Y
    left = max(0, box.x - margin_x)
    top = max(0, box.y - margin_y)
    right = min(image.width, box.x + box.width + margin_x)
    bottom = min(image.height, box.y + box.height + margin_y)
    crop = image.crop((int(left), int(top), int(round(right)), int(round(bottom))))
    return FaceCrop(image=crop, box=box)


def similarity_from_distance(distance: float) -> float:
    """Percentage form used for uploaded probe photos."""
    return round(max(0.0, 100 - distance * 100), 2)


def live_similarity_from_distance(distance: float) -> float:
    """Live-capture form; whole percent."""
    return float(max(0, round((1 - distance / DISTANCE_SATURATION) * 100)))


def classify_similarity(similarity: float) -> Tuple[str, str]:
    if similarity >= HIGH_THRESHOLD:
        return "High", "likely same person"
    if similarity >= MEDIUM_THRESHOLD:
        return "Medium", "possibly same person"
    return "Low", "different persons"


def score_distance(distance: float, mode: str = "upload") -> SimilarityResult:
    if mode not in MODES:
        raise ValueError(f"Unknown comparison mode: {mode!r}")
    if mode == "live":
        similarity = live_similarity_from_distance(distance)
    else:
        similarity = similarity_from_distance(distance)
    tier, verdict = classify_similarity(similarity)
    return SimilarityResult(similarity=similarity, distance=distance, tier=tier, verdict=verdict)


def compare_faces(engine, reference: Image.Image, probe: Image.Image,
                  mode: str = "upload") -> Tuple[Optional[SimilarityResult], Optional[str]]:
    """Returns (result, None) or (None, notice) when either side has no face."""
    if mode not in MODES:
        raise ValueError(f"Unknown comparison mode: {mode!r}")
    ref_desc = engine.embed(reference)
    probe_desc = engine.embed(probe) if ref_desc is not None else None
    if ref_desc is None or probe_desc is None:
        return None, COMPARISON_UNAVAILABLE
    distance = engine.distance(ref_desc, probe_desc)
    result = score_distance(distance, mode)
    logger.info("Face comparison (%s): distance=%.4f similarity=%s tier=%s",
                mode, distance, result.similarity, result.tier)
    return result, None
