"""
Versioned schemas for receipt extraction data interchange
"""
from receipt_ocr.common.schemas.extraction import (
    Attempt,
    AttemptErrorKind,
    ClassificationVerdict,
    ExtractionRequest,
    ExtractionResult,
    HybridMetrics,
    LineItem,
    ProviderKind,
    ReceiptFeatures,
)

__all__ = [
    'Attempt',
    'AttemptErrorKind',
    'ClassificationVerdict',
    'ExtractionRequest',
    'ExtractionResult',
    'HybridMetrics',
    'LineItem',
    'ProviderKind',
    'ReceiptFeatures',
]
