"""
Extraction Provider Base Interface

Defines the contracts for the collaborators the hybrid router depends on:
- CheapExtractionProvider: raw OCR text -> structured result (Groq)
- PreciseExtractionProvider: image -> structured result (Claude Vision)
- RawTextExtractor: image -> raw OCR text (Textract, static sample)

Real and mock implementations share these interfaces, so providers are
chosen at construction time without changing calling code.
"""
from typing import Optional, Protocol

from receipt_ocr.common.schemas.extraction import ExtractionResult, ProviderKind


class ProviderInvocationFailed(Exception):
    """
    Raised when a provider call fails (network, auth, upstream error,
    malformed structured response).
    """

    def __init__(
        self,
        message: str,
        provider: Optional[ProviderKind] = None,
        correlation_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.correlation_id = correlation_id


class CheapExtractionProvider(Protocol):
    """Protocol for low-cost providers that parse raw OCR text."""

    async def parse(self, raw_text: str, correlation_id: str) -> ExtractionResult:
        """
        Parse raw OCR text into a structured receipt.

        Args:
            raw_text: Text transcript of the receipt
            correlation_id: Caller-supplied id for tracking

        Returns:
            Normalized ExtractionResult

        Raises:
            ProviderInvocationFailed: If the upstream call errors or returns
                unparseable content
        """
        ...


class PreciseExtractionProvider(Protocol):
    """Protocol for high-accuracy providers that read the image directly."""

    async def extract(
        self,
        image_base64: str,
        correlation_id: str,
        image_format: str = "jpeg",
    ) -> ExtractionResult:
        """
        Extract a structured receipt from an image.

        Args:
            image_base64: Base64-encoded image
            correlation_id: Caller-supplied id for tracking
            image_format: jpeg, png, gif or webp

        Returns:
            Normalized ExtractionResult

        Raises:
            ProviderInvocationFailed: On auth failure, upstream error or
                malformed structured response
        """
        ...


class RawTextExtractor(Protocol):
    """Protocol for OCR engines that turn an image into plain text."""

    async def extract_raw_text(self, image_base64: str, correlation_id: str) -> str:
        ...
