"""
Hybrid Routing Module - cost-optimized receipt extraction

Flow:
1. Classifier: simple vs complex from lightweight image features
2. Router: simple -> cheap provider, complex -> precise provider
3. Fallback: cheap failure -> precise provider
4. Metrics: cost, savings, cheap success rate, manual review rate

Example:
- Clear 7-Eleven slip -> simple (0.85) -> Groq -> ฿0.05
- Handwritten market bill -> complex (0.19) -> Claude -> ฿0.50
- Groq returns invalid JSON -> fallback -> Claude -> ฿0.50
"""

from receipt_ocr.routing.classifier import (
    ClassificationUnavailable,
    FeatureExtractor,
    HeuristicFeatureExtractor,
    ReceiptClassifier,
)
from receipt_ocr.routing.hybrid_router import (
    AllProvidersExhausted,
    HybridRouter,
    create_hybrid_router,
    extract_receipt,
    get_hybrid_router,
)
from receipt_ocr.routing.metrics import MetricsAccumulator, format_metrics_report

__all__ = [
    'AllProvidersExhausted',
    'ClassificationUnavailable',
    'FeatureExtractor',
    'HeuristicFeatureExtractor',
    'HybridRouter',
    'MetricsAccumulator',
    'ReceiptClassifier',
    'create_hybrid_router',
    'extract_receipt',
    'format_metrics_report',
    'get_hybrid_router',
]
