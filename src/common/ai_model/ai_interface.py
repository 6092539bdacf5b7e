from abc import ABC, abstractmethod
from typing import List


class AIModelInterface(ABC):
    model_name: str

    @abstractmethod
    def detect_objects(self, image_bytes: bytes, content_type: str = "image/jpeg") -> List[dict]:
        """Return raw detections: [{"label", "score", "box"}, ...]"""
        pass

    @property
    @abstractmethod
    def api_key_set(self) -> bool:
        pass
