"""
SeriCare Backend — Upload Request/Response Schemas
===================================================

What:  Pydantic models for the upload pipeline: the classifier's prediction,
       the POST /upload response, history pages, and per-label statistics.
Why:   The Prediction model is also the validation gate between the external
       classifier and the record store: a label outside {healthy, diseased}
       or a confidence or class probability outside [0, 1] never reaches
       persistence.
"""

import uuid
from datetime import datetime
from typing import Annotated, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from sericare.schemas.common import CamelModel


# ══════════════════════════════════════════════════════════════════════════
# Classifier Contract
# ══════════════════════════════════════════════════════════════════════════


class Prediction(BaseModel):
    """
    What:  The external classifier's verdict for one image.

    Example body from the inference service:
        {"label": "Diseased", "confidence": 0.81,
         "probabilities": {"Healthy": 0.19, "Diseased": 0.81}}

    `label` is normalized to lower case on the way in.
    """

    label: str
    confidence: float = Field(ge=0.0, le=1.0)
    probabilities: Optional[Dict[str, Annotated[float, Field(ge=0.0, le=1.0)]]] = None

    @field_validator("label")
    @classmethod
    def normalize_label(cls, v: str) -> str:
        normalized = v.strip().lower()
        if normalized not in ("healthy", "diseased"):
            raise ValueError(f"Unknown label '{v}'. Expected 'healthy' or 'diseased'")
        return normalized

    @property
    def is_diseased(self) -> bool:
        return self.label == "diseased"


# ══════════════════════════════════════════════════════════════════════════
# POST /upload
# ══════════════════════════════════════════════════════════════════════════


class PredictionOut(CamelModel):
    label: str
    confidence: float
    probabilities: Optional[Dict[str, float]] = None
    disease: Optional[str] = Field(default=None, description="Disease name; null when healthy")
    preventive_measures: List[str] = Field(default_factory=list)


class ImageOut(CamelModel):
    url: str = Field(description="Relative URL of the stored image (/uploads/<file>)")
    filename: str = Field(description="Stored (collision-resistant) file name")
    size: int = Field(description="Size in bytes")


class UploadResult(CamelModel):
    """
    What:  `data` of a successful POST /upload.

    Serialized as:
        {"uploadId": "...", "prediction": {"label", "confidence",
         "probabilities", "disease", "preventiveMeasures"},
         "image": {"url", "filename", "size"}, "timestamp": "..."}
    """

    upload_id: uuid.UUID
    prediction: PredictionOut
    image: ImageOut
    timestamp: datetime


# ══════════════════════════════════════════════════════════════════════════
# GET /upload/history and GET /upload/stats
# ══════════════════════════════════════════════════════════════════════════


class DiseaseInfoOut(CamelModel):
    name: str
    preventive_measures: List[str]


class LocationOut(CamelModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    village: Optional[str] = None


class UploadRecordOut(CamelModel):
    """One history entry, built from an Upload row."""

    id: uuid.UUID
    image_url: str
    filename: str
    label: str
    confidence: float
    probabilities: Optional[Dict[str, float]] = None
    disease_info: Optional[DiseaseInfoOut] = None
    image_size: int
    mime_type: str
    notes: Optional[str] = None
    location: Optional[LocationOut] = None
    timestamp: datetime


class UploadHistoryPage(CamelModel):
    """
    Pagination:
        Offset paging: ?limit=20&offset=40
        Cursor paging: ?limit=20&cursor=<nextCursor of previous page>
        The cursor encodes created_at and id of the last item returned.
    """

    uploads: List[UploadRecordOut]
    total_count: int
    next_cursor: Optional[str] = None
    has_more: bool


class LabelStats(CamelModel):
    count: int
    avg_confidence: float


class UploadStats(CamelModel):
    stats: Dict[str, LabelStats]
    total: int
