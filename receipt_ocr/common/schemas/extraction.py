"""
Receipt extraction schemas (Pydantic models)

All monetary amounts are integers in the smallest currency unit
(satang for THB: 1 Baht = 100 Satang) to avoid floating-point drift.
Every model here is frozen: results, verdicts, attempts and metric
snapshots are never mutated after construction.
"""
from datetime import date
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ProviderKind(str, Enum):
    """Extraction provider that produced (or failed to produce) a result"""
    CHEAP = "cheap"       # Groq text parsing over raw OCR text
    PRECISE = "precise"   # Claude Vision over the image


class AttemptErrorKind(str, Enum):
    """Why a provider attempt failed"""
    PROVIDER_ERROR = "provider_error"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class LineItem(BaseModel):
    """Single purchased item on a receipt"""
    model_config = ConfigDict(frozen=True)

    description: str
    quantity: int = Field(default=1, ge=0)
    unit_price: int = Field(..., description="Price per unit in smallest currency unit")
    total: int = Field(..., description="Line total in smallest currency unit")


class ExtractionResult(BaseModel):
    """
    Normalized output of any extraction provider.

    Attributes:
        total_amount: Grand total in smallest currency unit
        tax_amount: VAT/tax in smallest currency unit, None if not shown
        vendor_name: Merchant name
        issue_date: Receipt date (Christian Era)
        raw_text: Transcript or summary returned with the result
        confidence: Provider's confidence (0.0 to 1.0)
        line_items: Purchased items, if extracted
        provider: Which provider produced this result (set by the router)
    """
    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "total_amount": 8560,
                "currency": "THB",
                "tax_amount": 560,
                "vendor_name": "7-Eleven",
                "issue_date": "2026-01-22",
                "confidence": 0.88,
                "line_items": [],
                "provider": "cheap",
            }
        },
    )

    total_amount: int = Field(..., ge=0)
    currency: str = Field(default="THB")
    tax_amount: Optional[int] = Field(None, ge=0)
    vendor_name: Optional[str] = None
    issue_date: Optional[date] = None
    raw_text: Optional[str] = None
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    line_items: List[LineItem] = Field(default_factory=list)
    provider: Optional[ProviderKind] = None

    @property
    def effective_confidence(self) -> float:
        """Confidence used for decisions (missing counts as 0)"""
        return self.confidence if self.confidence is not None else 0.0


class ExtractionRequest(BaseModel):
    """One receipt to extract"""
    model_config = ConfigDict(frozen=True)

    image_base64: str = Field(..., description="Base64-encoded receipt image")
    correlation_id: str = Field(..., description="Caller-supplied id for tracking")
    image_format: str = Field(default="jpeg", description="jpeg, png, gif or webp")

    @field_validator("image_base64")
    @classmethod
    def validate_image(cls, v):
        """Image reference must be non-empty"""
        if not v:
            raise ValueError("image_base64 must not be empty")
        return v

    @field_validator("image_format")
    @classmethod
    def validate_image_format(cls, v):
        """Validate image format"""
        valid_formats = ["jpeg", "png", "gif", "webp"]
        if v.lower() not in valid_formats:
            raise ValueError(f"image_format must be one of {valid_formats}")
        return v.lower()


class ReceiptFeatures(BaseModel):
    """Lightweight image signals used to decide between cheap and precise extraction"""
    model_config = ConfigDict(frozen=True)

    brightness: float = Field(..., ge=0.0, le=1.0, description="Higher = clearer photo")
    text_density: float = Field(..., ge=0.0, le=1.0, description="Higher = more text")
    has_standard_format: bool = Field(..., description="Matches a known receipt layout")
    has_handwriting: bool = False
    has_fading: bool = False


class ClassificationVerdict(BaseModel):
    """Simple/complex decision for one receipt"""
    model_config = ConfigDict(frozen=True)

    is_simple: bool
    confidence: float = Field(..., ge=0.0, le=1.0)
    reason: str
    features: Optional[ReceiptFeatures] = None


class Attempt(BaseModel):
    """
    One provider invocation during the processing of a request.

    request_id groups attempts belonging to the same extract_receipt() call;
    sequence is the 0-based position of the attempt within that request.
    """
    model_config = ConfigDict(frozen=True)

    request_id: int
    correlation_id: str
    sequence: int = Field(default=0, ge=0)
    provider: ProviderKind
    success: bool
    cost: float = Field(default=0.0, ge=0.0)
    duration_ms: int = Field(default=0, ge=0)
    result: Optional[ExtractionResult] = None
    error: Optional[str] = None
    error_kind: Optional[AttemptErrorKind] = None
    is_fallback: bool = False

    @model_validator(mode="after")
    def check_outcome(self):
        """Successful attempts carry a result, failed ones carry an error"""
        if self.success:
            if self.result is None:
                raise ValueError("successful attempt requires a result")
            if self.error is not None or self.error_kind is not None:
                raise ValueError("successful attempt cannot carry an error")
        else:
            if self.result is not None:
                raise ValueError("failed attempt cannot carry a result")
            if self.error is None:
                raise ValueError("failed attempt requires an error description")
        return self


class HybridMetrics(BaseModel):
    """Aggregate statistics over the attempt history (immutable snapshot)"""
    model_config = ConfigDict(frozen=True)

    total_requests: int = 0
    total_attempts: int = 0
    simple_count: int = 0
    complex_count: int = 0
    cheap_attempts: int = 0
    cheap_success_rate: float = 0.0
    fallback_count: int = 0
    cancelled_count: int = 0
    total_cost: float = 0.0
    avg_cost_per_request: float = 0.0
    savings_vs_precise_only: float = 0.0
    manual_review_count: int = 0
    manual_review_rate: float = 0.0
