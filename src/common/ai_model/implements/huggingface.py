from typing import Any, List, Optional
from common.ai_model.ai_interface import AIModelInterface
import os
import time
import logging as log

import requests
from dotenv import load_dotenv

load_dotenv()

DEFAULT_MODEL = "facebook/detr-resnet-101"
HF_BASE_URL = "https://api-inference.huggingface.co/models"


class InferenceError(RuntimeError):
    pass


class ModelLoadingError(InferenceError):
    pass


def _json_or_none(resp: requests.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return None


def _is_loading(payload: Any) -> bool:
    return isinstance(payload, dict) and "loading" in str(payload.get("error", "")).lower()


class HuggingFaceModel(AIModelInterface):
    """
    Object detection through the Hugging Face Inference API.

    While the hosted model is cold the API answers with {"error": "... is currently loading"}.
    That answer is re-polled with exponential backoff, at most `max_retries` times and
    never sleeping past `retry_budget` seconds in total.
    """

    def __init__(
        self,
        model_name: Optional[str] = None,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        retry_budget: Optional[float] = None,
    ):
        self.model_name = model_name or os.getenv("HF_MODEL", DEFAULT_MODEL)
        self.api_key = api_key if api_key is not None else os.getenv("HUGGINGFACE_API_KEY")
        self.api_url = api_url or os.getenv("HF_API_URL") or f"{HF_BASE_URL}/{self.model_name}"
        self.timeout = timeout if timeout is not None else float(os.getenv("HF_TIMEOUT", 30))
        self.max_retries = max_retries if max_retries is not None else int(os.getenv("HF_MAX_RETRIES", 3))
        self.retry_delay = retry_delay if retry_delay is not None else float(os.getenv("HF_RETRY_DELAY", 20))
        self.retry_budget = retry_budget if retry_budget is not None else float(os.getenv("HF_RETRY_BUDGET", 120))

        if not self.api_key:
            log.warning("HUGGINGFACE_API_KEY is not set; inference calls will be rejected")

    @property
    def api_key_set(self) -> bool:
        return bool(self.api_key)

    def _post(self, image_bytes: bytes, content_type: str) -> requests.Response:
        return requests.post(
            self.api_url,
            data=image_bytes,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": content_type,
            },
            timeout=self.timeout,
        )

    def detect_objects(self, image_bytes: bytes, content_type: str = "image/jpeg") -> List[dict]:
        waited = 0.0
        attempt = 0
        while True:
            log.info("Calling %s (attempt %d)", self.model_name, attempt + 1)
            resp = self._post(image_bytes, content_type)
            payload = _json_or_none(resp)

            if not _is_loading(payload):
                break

            delay = self.retry_delay * (2 ** attempt)
            if attempt >= self.max_retries or waited + delay > self.retry_budget:
                raise ModelLoadingError(
                    f"Model {self.model_name} still loading after {attempt + 1} attempts ({waited:.0f}s waited)"
                )
            log.warning("Model %s is loading, retrying in %.1fs", self.model_name, delay)
            time.sleep(delay)
            waited += delay
            attempt += 1

        resp.raise_for_status()

        if isinstance(payload, dict) and payload.get("error"):
            raise InferenceError(str(payload["error"]))
        if not isinstance(payload, list):
            raise InferenceError(f"Unexpected inference response: {str(payload)[:200]}")

        log.info("Model %s returned %d raw detections", self.model_name, len(payload))
        return payload


huggingFaceModel = HuggingFaceModel()
