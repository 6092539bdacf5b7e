# waste.service.py
import os
import time
import logging as log
from typing import List, Mapping, Optional, Sequence, Tuple

from provider.minIO import MinioService, generate_file_key
from provider.local_storage import LocalStorageService
from provider.database import MetadataRepository

from .schema import AnalysisSummary, Detection, WasteType
from common.utils import annotate_image, image_size, parse_detections
from common.waste_types import waste_types

from common.ai_model.ai_interface import AIModelInterface
from common.ai_model.implements.huggingface import huggingFaceModel


class ImageNotFoundError(LookupError):
    pass


def eco_score(detections: Sequence[Detection]) -> str:
    """
    A when at least 70% of the detections are biodegradable, B from 40%, else C.
    """
    total = len(detections)
    if total == 0:
        return "C"
    ratio = sum(1 for d in detections if d.type == WasteType.BIODEGRADABLE) / total
    if ratio >= 0.7:
        return "A"
    if ratio >= 0.4:
        return "B"
    return "C"


def build_image_store():
    if os.getenv("IMAGE_STORE", "minio").lower() == "local":
        return LocalStorageService()
    return MinioService()


class WasteService:
    """
    Detect objects, sort them into biodegradable / non-biodegradable,
    annotate the image, store it and keep a metadata row for it.
    """

    def __init__(
        self,
        model: AIModelInterface = huggingFaceModel,
        store=None,
        repository: Optional[MetadataRepository] = None,
        table: Mapping[str, str] = waste_types,
    ):
        self.model = model
        self.store = store if store is not None else build_image_store()
        self.repository = repository if repository is not None else MetadataRepository()
        self.table = table

    def detect_from_bytes(self, image_bytes: bytes, content_type: str = "image/jpeg") -> List[Detection]:
        """
        Run detection on raw image bytes and return typed, filtered detections.
        """
        W, H = image_size(image_bytes)
        raw = self.model.detect_objects(image_bytes, content_type)
        return [
            Detection(
                label=d["label"],
                confidence=d["confidence"],
                box=d["box"],
                type=WasteType.from_kind(d["kind"]),
            )
            for d in parse_detections(raw, W, H, self.table)
        ]

    def detect_from_file(self, path: str, content_type: str = "image/jpeg") -> Tuple[bytes, List[Detection]]:
        with open(path, "rb") as fh:
            image_bytes = fh.read()
        return image_bytes, self.detect_from_bytes(image_bytes, content_type)

    def process_file(self, path: str, content_type: str = "image/jpeg") -> Optional[AnalysisSummary]:
        """
        Full pipeline: detect, annotate, upload, insert metadata, score.
        Returns None when nothing was detected; nothing is stored in that case.
        """
        started = time.perf_counter()
        image_bytes, detections = self.detect_from_file(path, content_type)
        if not detections:
            log.info("No objects detected in %s", os.path.basename(path))
            return None

        annotated = annotate_image(image_bytes, [d.model_dump(mode="json") for d in detections])
        file_key = generate_file_key("annotated", ".jpg")

        self.store.upload_image(file_key, annotated, content_type="image/jpeg")
        image_url = self.store.get_url(file_key)
        metadata = self.repository.insert(file_key)

        bio = [d for d in detections if d.type == WasteType.BIODEGRADABLE]
        non_bio = [d for d in detections if d.type == WasteType.NON_BIODEGRADABLE]
        log.info("Stored %s: %d biodegradable, %d non-biodegradable", file_key, len(bio), len(non_bio))

        return AnalysisSummary(
            image_id=metadata.id,
            image_url=image_url,
            detections=detections,
            biodegradable=bio,
            non_biodegradable=non_bio,
            total=len(detections),
            eco_score=eco_score(detections),
            time_taken=round(time.perf_counter() - started, 2),
        )

    def fetch_image(self, image_id: str) -> Tuple[str, bytes]:
        metadata = self.repository.get(image_id)
        if metadata is None:
            raise ImageNotFoundError(f"Image {image_id} not found")
        return metadata.filename, self.store.get_image(metadata.filename)

    def delete_image(self, image_id: str) -> None:
        metadata = self.repository.get(image_id)
        if metadata is None:
            raise ImageNotFoundError("Metadata not found")
        self.store.remove_image(metadata.filename)
        if not self.repository.delete(image_id):
            raise RuntimeError(f"Metadata {image_id} disappeared during delete")
        log.info("Deleted image %s (%s)", image_id, metadata.filename)

    def health(self) -> dict:
        return {
            "status": "OK",
            "model": self.model.model_name,
            "apiKeySet": self.model.api_key_set,
        }
