from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class WasteType(str, Enum):
    BIODEGRADABLE = "Biodegradable"
    NON_BIODEGRADABLE = "Non-biodegradable"

    @classmethod
    def from_kind(cls, kind: str) -> "WasteType":
        # "non-biodegradable" -> "Non-biodegradable"
        kind = (kind or "").strip().lower()
        normalized = kind[:1].upper() + kind[1:]
        try:
            return cls(normalized)
        except ValueError:
            return cls.NON_BIODEGRADABLE


class Detection(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    confidence: float = Field(..., gt=0, le=1)
    box: List[float] = Field(
        ...,
        min_length=4,
        max_length=4,
        description="[x, y, width, height] as percentages of image width/height",
    )
    type: WasteType


class AnalyzeResponse(BaseModel):
    detections: List[Detection] = Field(default_factory=list)


class DeleteImageResponse(BaseModel):
    success: bool = True


class HealthResponse(BaseModel):
    status: str = "OK"
    model: str
    apiKeySet: bool


class AnalysisSummary(BaseModel):
    image_id: str
    image_url: Optional[str] = Field(None, description="URL of the annotated image")
    detections: List[Detection] = Field(default_factory=list)
    biodegradable: List[Detection] = Field(default_factory=list)
    non_biodegradable: List[Detection] = Field(default_factory=list)
    total: int = 0
    eco_score: str = "C"
    time_taken: float = Field(0.0, description="Processing time in seconds")
