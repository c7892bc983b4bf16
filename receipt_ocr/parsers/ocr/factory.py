"""
Extraction Provider Factory

Creates the providers the hybrid router is built from, based on APP_MODE:
- DEV: mock Claude + mock Groq (fast, free, deterministic)
- PROD: Claude Vision + Groq (real API calls, keys required)

Raw text for the Groq path comes from RAW_TEXT_BACKEND (static or textract).
"""
from typing import Optional

import structlog

from receipt_ocr.common.config import Settings, get_settings
from receipt_ocr.parsers.ocr.base import (
    CheapExtractionProvider,
    PreciseExtractionProvider,
    RawTextExtractor,
)
from receipt_ocr.parsers.ocr.provider_claude import ClaudeVisionProvider, MockClaudeProvider
from receipt_ocr.parsers.ocr.provider_groq import GroqTextProvider, MockGroqProvider
from receipt_ocr.parsers.ocr.raw_text import StaticTextExtractor, TextractTextExtractor

logger = structlog.get_logger()


def create_precise_provider(settings: Optional[Settings] = None) -> PreciseExtractionProvider:
    """Create the Claude provider for the configured mode"""
    settings = settings or get_settings()

    if settings.use_mock_providers:
        logger.info("precise_provider_created", provider="mock_claude")
        return MockClaudeProvider(
            latency_seconds=settings.mock_latency_seconds,
            currency=settings.currency,
        )

    logger.info("precise_provider_created", provider="claude", model=settings.claude_model)
    return ClaudeVisionProvider(
        api_key=settings.anthropic_api_key,
        model=settings.claude_model,
        max_tokens=settings.claude_max_tokens,
        currency=settings.currency,
    )


def create_cheap_provider(settings: Optional[Settings] = None) -> CheapExtractionProvider:
    """Create the Groq provider for the configured mode"""
    settings = settings or get_settings()

    if settings.use_mock_providers:
        logger.info("cheap_provider_created", provider="mock_groq")
        return MockGroqProvider(
            latency_seconds=settings.mock_latency_seconds,
            currency=settings.currency,
        )

    logger.info("cheap_provider_created", provider="groq", model=settings.groq_model)
    return GroqTextProvider(
        api_key=settings.groq_api_key,
        model=settings.groq_model,
        temperature=settings.groq_temperature,
        max_tokens=settings.groq_max_tokens,
        timeout=settings.http_timeout_seconds,
        currency=settings.currency,
    )


def create_raw_text_extractor(settings: Optional[Settings] = None) -> RawTextExtractor:
    """Create the raw OCR engine used ahead of the Groq provider"""
    settings = settings or get_settings()

    if settings.raw_text_backend == "textract":
        return TextractTextExtractor(aws_region=settings.aws_textract_region)

    return StaticTextExtractor()
