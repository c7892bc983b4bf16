"""
Groq Text Extraction Provider (cheap)

Parses raw OCR text into structured data using Groq's fast LLM.
Used for simple receipts where raw text is already extracted.

Flow:
    Textract / static sample -> Raw text -> Groq parsing -> ExtractionResult

Cost: ~฿0.05/receipt (vs Claude ฿0.50)
"""
import asyncio
import os
from datetime import date
from typing import Any, Dict, Optional

import httpx
import structlog

from receipt_ocr.common.schemas.extraction import ExtractionResult, ProviderKind
from receipt_ocr.parsers.ocr.base import ProviderInvocationFailed
from receipt_ocr.parsers.ocr.normalize import build_extraction_result, parse_json_payload

logger = structlog.get_logger()

# Groq is generally less confident than Claude
DEFAULT_CONFIDENCE = 0.7

SYSTEM_PROMPT = "You are a Thai receipt parser. Extract structured data from OCR text."


def build_parse_prompt(raw_text: str) -> str:
    """Build the parsing prompt around the OCR transcript"""
    return f"""Parse this Thai receipt OCR text into structured JSON.

**OCR Text:**
{raw_text}

**Instructions:**
1. Extract total amount (convert to Satang: 1 Baht = 100 Satang)
2. Extract VAT amount (if shown, typically 7%)
3. Extract vendor/shop name
4. Extract date (convert Buddhist Era to Christian Era: BE - 543)

**Output JSON format (no markdown, just JSON):**
{{
  "total_amount_satang": number,
  "vat_amount_satang": number | null,
  "vendor_name": string | null,
  "issue_date": "YYYY-MM-DD" | null,
  "confidence": number (0.0-1.0)
}}

Return ONLY valid JSON, no other text."""


class GroqTextProvider:
    """
    Groq chat-completions provider (OpenAI-compatible API).

    Usage:
        provider = GroqTextProvider(api_key="gsk_...")
        result = await provider.parse(raw_text, correlation_id="rcpt-001")
    """

    API_URL = "https://api.groq.com/openai/v1/chat/completions"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "mixtral-8x7b-32768",
        temperature: float = 0.1,
        max_tokens: int = 512,
        timeout: float = 30.0,
        currency: str = "THB",
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize Groq provider.

        Args:
            api_key: Groq API key (defaults to GROQ_API_KEY env var)
            model: Groq model name
            temperature: Sampling temperature (low for structured output)
            max_tokens: Response token limit
            timeout: HTTP timeout in seconds
            currency: Currency the receipts are in
            client: Shared httpx.AsyncClient (a short-lived one is used if None)

        Raises:
            ValueError: If no API key is available
        """
        self.api_key = api_key or os.getenv("GROQ_API_KEY")
        if not self.api_key:
            raise ValueError(
                "GROQ_API_KEY is required in PROD mode. Set it in .env or pass api_key."
            )

        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.currency = currency
        self._client = client

    async def parse(self, raw_text: str, correlation_id: str) -> ExtractionResult:
        """
        Parse raw OCR text into a structured receipt.

        Raises:
            ProviderInvocationFailed: On HTTP error or unparseable content
        """
        logger.info("groq_parse_request",
                   correlation_id=correlation_id,
                   model=self.model,
                   text_length=len(raw_text))

        data = await self._post(self._build_request(raw_text), correlation_id)

        try:
            content = data["choices"][0]["message"]["content"] or "{}"
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderInvocationFailed(
                "Groq response has no message content",
                provider=ProviderKind.CHEAP,
                correlation_id=correlation_id,
            ) from e

        payload = parse_json_payload(content, ProviderKind.CHEAP, correlation_id)
        result = build_extraction_result(
            payload,
            provider=ProviderKind.CHEAP,
            currency=self.currency,
            default_confidence=DEFAULT_CONFIDENCE,
            raw_text=raw_text,
            correlation_id=correlation_id,
        )

        logger.info("groq_parse_complete",
                   correlation_id=correlation_id,
                   amount=result.total_amount,
                   confidence=result.confidence)
        return result

    def _build_request(self, raw_text: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_parse_prompt(raw_text)},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

    async def _post(self, body: Dict[str, Any], correlation_id: str) -> Dict[str, Any]:
        """POST to Groq and return the decoded JSON body"""
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

        try:
            if self._client is not None:
                response = await self._client.post(self.API_URL, json=body, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.API_URL, json=body, headers=headers)
            response.raise_for_status()
            return response.json()

        except httpx.HTTPStatusError as e:
            logger.error("groq_api_error",
                        correlation_id=correlation_id,
                        status=e.response.status_code)
            raise ProviderInvocationFailed(
                f"Groq API error: {e.response.status_code}",
                provider=ProviderKind.CHEAP,
                correlation_id=correlation_id,
            ) from e

        except httpx.HTTPError as e:
            logger.error("groq_request_failed",
                        correlation_id=correlation_id,
                        error=str(e))
            raise ProviderInvocationFailed(
                f"Groq request failed: {e}",
                provider=ProviderKind.CHEAP,
                correlation_id=correlation_id,
            ) from e

        except ValueError as e:
            raise ProviderInvocationFailed(
                "Groq returned a non-JSON body",
                provider=ProviderKind.CHEAP,
                correlation_id=correlation_id,
            ) from e


class MockGroqProvider:
    """
    DEV mode stand-in for GroqTextProvider.

    Faster than the Claude mock and less confident (0.88 vs 0.95).
    """

    def __init__(self, latency_seconds: float = 0.0, currency: str = "THB"):
        self.latency_seconds = latency_seconds
        self.currency = currency

    async def parse(self, raw_text: str, correlation_id: str) -> ExtractionResult:
        logger.debug("mock_groq_parse_called",
                    correlation_id=correlation_id,
                    text_length=len(raw_text))

        if self.latency_seconds:
            await asyncio.sleep(self.latency_seconds)

        return ExtractionResult(
            total_amount=8560,
            currency=self.currency,
            tax_amount=560,
            vendor_name="7-Eleven Mock",
            issue_date=date(2026, 1, 22),
            raw_text=raw_text,
            confidence=0.88,
        )
