"""
Receipt Classifier - simple vs complex

Simple receipts  -> Groq text parsing (cheap)
Complex receipts -> Claude Vision (accurate)

Feature extraction is pluggable (heuristic or model-based); the decision
itself is a pure function of the extracted ReceiptFeatures, so identical
features always give identical verdicts.
"""
from typing import Optional, Protocol

import structlog

from receipt_ocr.common.schemas.extraction import ClassificationVerdict, ReceiptFeatures

logger = structlog.get_logger()

BRIGHTNESS_WEIGHT = 0.4
TEXT_DENSITY_WEIGHT = 0.3
STANDARD_FORMAT_WEIGHT = 0.3
HANDWRITING_PENALTY = 0.5
FADING_PENALTY = 0.7

NO_FEATURES_REASON = "No features detected"


class ClassificationUnavailable(Exception):
    """Raised by a feature extractor when no signal can be derived from the image"""
    pass


class FeatureExtractor(Protocol):
    """Derives ReceiptFeatures from an image."""

    def extract_features(self, image_base64: str) -> ReceiptFeatures:
        """
        Raises:
            ClassificationUnavailable: If the image yields no usable signal
        """
        ...


class HeuristicFeatureExtractor:
    """
    Placeholder feature extraction without decoding the image.

    Larger payloads are treated as higher quality photos. Text density,
    layout match and handwriting need real image analysis and are fixed.
    """

    FULL_QUALITY_SIZE = 100_000  # base64 chars
    FADING_BRIGHTNESS = 0.5

    def extract_features(self, image_base64: str) -> ReceiptFeatures:
        if not image_base64:
            raise ClassificationUnavailable("empty image")

        brightness = min(len(image_base64) / self.FULL_QUALITY_SIZE, 1.0)

        return ReceiptFeatures(
            brightness=brightness,
            text_density=0.7,
            has_standard_format=True,
            has_handwriting=False,
            has_fading=brightness < self.FADING_BRIGHTNESS,
        )


class ReceiptClassifier:
    """
    Classifies receipts as simple or complex.

    A receipt is simple when it is bright enough, matches a known layout,
    and shows no handwriting or fading. Confidence is a weighted score:
    brightness 40%, text density 30%, layout match 30%, halved for
    handwriting and multiplied by 0.7 for fading.
    """

    def __init__(
        self,
        feature_extractor: Optional[FeatureExtractor] = None,
        brightness_threshold: float = 0.6,
    ):
        self.feature_extractor = feature_extractor or HeuristicFeatureExtractor()
        self.brightness_threshold = brightness_threshold

    def classify(self, image_base64: str) -> ClassificationVerdict:
        """
        Classify a receipt image. Never raises.

        Falls back to the lowest-confidence complex verdict when no
        features can be extracted.
        """
        try:
            features = self.feature_extractor.extract_features(image_base64)
        except ClassificationUnavailable as e:
            logger.warning("classification_unavailable", reason=str(e))
            return self.unavailable_verdict()
        except Exception as e:
            logger.error("feature_extraction_failed", error=str(e), exc_info=True)
            return self.unavailable_verdict()

        return self.evaluate(features)

    def evaluate(self, features: ReceiptFeatures) -> ClassificationVerdict:
        """Build the verdict for already extracted features"""
        is_simple = self.is_simple(features)
        return ClassificationVerdict(
            is_simple=is_simple,
            confidence=self.calculate_confidence(features),
            reason=self.generate_reason(features, is_simple),
            features=features,
        )

    @staticmethod
    def unavailable_verdict() -> ClassificationVerdict:
        return ClassificationVerdict(
            is_simple=False,
            confidence=0.0,
            reason=NO_FEATURES_REASON,
            features=None,
        )

    def is_simple(self, features: ReceiptFeatures) -> bool:
        return (
            features.brightness > self.brightness_threshold
            and features.has_standard_format
            and not features.has_handwriting
            and not features.has_fading
        )

    @staticmethod
    def calculate_confidence(features: ReceiptFeatures) -> float:
        confidence = (
            features.brightness * BRIGHTNESS_WEIGHT
            + features.text_density * TEXT_DENSITY_WEIGHT
            + (STANDARD_FORMAT_WEIGHT if features.has_standard_format else 0.0)
        )

        if features.has_handwriting:
            confidence *= HANDWRITING_PENALTY
        if features.has_fading:
            confidence *= FADING_PENALTY

        # Rounded so boundary scores compare exactly against thresholds
        return round(min(max(confidence, 0.0), 1.0), 4)

    def generate_reason(self, features: ReceiptFeatures, is_simple: bool) -> str:
        """Human-readable reason (for logs and debugging)"""
        if is_simple:
            return "Clear, standard format receipt - suitable for text parsing"

        reasons = []
        if features.brightness <= self.brightness_threshold:
            reasons.append("low brightness")
        if not features.has_standard_format:
            reasons.append("non-standard format")
        if features.has_handwriting:
            reasons.append("handwritten")
        if features.has_fading:
            reasons.append("faded text")

        return f"Complex receipt ({', '.join(reasons)}) - using vision extraction"
