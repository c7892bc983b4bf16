"""
Extraction Providers

Pluggable providers behind the hybrid router.

Available providers:
    - ClaudeVisionProvider: Claude Vision over the image (precise, ~฿0.50)
    - GroqTextProvider: Groq LLM over raw OCR text (cheap, ~฿0.05)
    - MockClaudeProvider / MockGroqProvider: deterministic DEV stand-ins
    - TextractTextExtractor / StaticTextExtractor: raw text for the Groq path

Configuration via environment:
    - APP_MODE: DEV (mocks) or PROD (real APIs)
    - ANTHROPIC_API_KEY, GROQ_API_KEY: required in PROD
    - RAW_TEXT_BACKEND: static or textract
"""
from receipt_ocr.parsers.ocr.base import (
    CheapExtractionProvider,
    PreciseExtractionProvider,
    ProviderInvocationFailed,
    RawTextExtractor,
)
from receipt_ocr.parsers.ocr.factory import (
    create_cheap_provider,
    create_precise_provider,
    create_raw_text_extractor,
)
from receipt_ocr.parsers.ocr.provider_claude import ClaudeVisionProvider, MockClaudeProvider
from receipt_ocr.parsers.ocr.provider_groq import GroqTextProvider, MockGroqProvider
from receipt_ocr.parsers.ocr.raw_text import StaticTextExtractor, TextractTextExtractor

__all__ = [
    "CheapExtractionProvider",
    "PreciseExtractionProvider",
    "ProviderInvocationFailed",
    "RawTextExtractor",
    "ClaudeVisionProvider",
    "MockClaudeProvider",
    "GroqTextProvider",
    "MockGroqProvider",
    "StaticTextExtractor",
    "TextractTextExtractor",
    "create_cheap_provider",
    "create_precise_provider",
    "create_raw_text_extractor",
]
