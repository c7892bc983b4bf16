"""
Claude Vision Extraction Provider (precise)

Reads the receipt image directly with Claude's vision model.
Highest accuracy (~0.95 confidence) and the last resort of the hybrid
router, but roughly 10x the cost of the Groq text path.

Cost: ~฿0.50 per receipt
"""
import asyncio
import os
from datetime import date
from typing import Any, Dict, Optional

import anthropic
import structlog

from receipt_ocr.common.schemas.extraction import ExtractionResult, LineItem, ProviderKind
from receipt_ocr.parsers.ocr.base import ProviderInvocationFailed
from receipt_ocr.parsers.ocr.normalize import build_extraction_result, parse_json_payload

logger = structlog.get_logger()


EXTRACTION_PROMPT = """You are a Thai accounting OCR assistant. Extract structured data from this receipt image.

**Instructions:**
1. Extract the following fields and return as JSON:
   - total_amount_satang: Total amount in Satang (1 Baht = 100 Satang)
   - vat_amount_satang: VAT amount in Satang (null if not shown)
   - vendor_name: Merchant/shop name
   - issue_date: Date in YYYY-MM-DD format (convert Buddhist Era to Christian Era if needed)
   - line_items: Array of items (optional)

2. Thai context:
   - VAT is typically 7% in Thailand
   - Dates may be in Buddhist Era (BE) - convert to CE by subtracting 543
   - Common terms: รวม (total), ภาษี (tax), วันที่ (date)

3. Quality:
   - If a field is unclear, set to null
   - Include a confidence score (0.0-1.0) for overall extraction

**Output format (JSON only, no markdown):**
{
  "total_amount_satang": number,
  "vat_amount_satang": number | null,
  "vendor_name": string | null,
  "issue_date": "YYYY-MM-DD" | null,
  "confidence": number,
  "raw_text": "brief text summary",
  "line_items": [
    {
      "description": string,
      "quantity": number,
      "unit_price_satang": number,
      "total_satang": number
    }
  ]
}

Return ONLY the JSON, no other text."""


class ClaudeVisionProvider:
    """
    Claude Vision provider using the Anthropic API.

    Usage:
        provider = ClaudeVisionProvider(api_key="sk-ant-...")
        result = await provider.extract(image_base64, correlation_id="rcpt-001")
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "claude-3-5-sonnet-20241022",
        max_tokens: int = 1024,
        currency: str = "THB",
        client: Optional[Any] = None,
    ):
        """
        Initialize Claude provider.

        Args:
            api_key: Anthropic API key (defaults to ANTHROPIC_API_KEY env var)
            model: Claude model with vision support
            max_tokens: Response token limit
            currency: Currency the receipts are in
            client: Pre-built AsyncAnthropic-compatible client

        Raises:
            ValueError: If no API key is available and no client was given
        """
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if client is None and not self.api_key:
            raise ValueError(
                "ANTHROPIC_API_KEY is required in PROD mode. Set it in .env or pass api_key."
            )

        self.client = client or anthropic.AsyncAnthropic(api_key=self.api_key)
        self.model = model
        self.max_tokens = max_tokens
        self.currency = currency

    async def extract(
        self,
        image_base64: str,
        correlation_id: str,
        image_format: str = "jpeg",
    ) -> ExtractionResult:
        """
        Extract receipt data from an image.

        Raises:
            ProviderInvocationFailed: On API error or malformed response
        """
        logger.info("claude_extraction_request",
                   correlation_id=correlation_id,
                   model=self.model,
                   image_length=len(image_base64))

        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[self._build_message(image_base64, image_format)],
            )
        except anthropic.APIError as e:
            logger.error("claude_api_error",
                        correlation_id=correlation_id,
                        error=str(e))
            raise ProviderInvocationFailed(
                f"Claude API error: {e}",
                provider=ProviderKind.PRECISE,
                correlation_id=correlation_id,
            ) from e

        content_text = response.content[0].text if response.content else ""
        payload = parse_json_payload(content_text, ProviderKind.PRECISE, correlation_id)
        result = build_extraction_result(
            payload,
            provider=ProviderKind.PRECISE,
            currency=self.currency,
            default_confidence=0.0,
            correlation_id=correlation_id,
        )

        usage = getattr(response, "usage", None)
        logger.info("claude_extraction_complete",
                   correlation_id=correlation_id,
                   amount=result.total_amount,
                   confidence=result.confidence,
                   input_tokens=getattr(usage, "input_tokens", None),
                   output_tokens=getattr(usage, "output_tokens", None))

        return result

    def _build_message(self, image_base64: str, image_format: str) -> Dict[str, Any]:
        """Build the user message with prompt and image blocks"""
        return {
            "role": "user",
            "content": [
                {
                    "type": "text",
                    "text": EXTRACTION_PROMPT,
                },
                {
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": f"image/{image_format}",
                        "data": image_base64,
                    },
                },
            ],
        }


class MockClaudeProvider:
    """
    DEV mode stand-in for ClaudeVisionProvider.

    Returns the same receipt every time (fast, free, deterministic).
    """

    def __init__(self, latency_seconds: float = 0.0, currency: str = "THB"):
        self.latency_seconds = latency_seconds
        self.currency = currency

    async def extract(
        self,
        image_base64: str,
        correlation_id: str,
        image_format: str = "jpeg",
    ) -> ExtractionResult:
        logger.debug("mock_claude_extract_called",
                    correlation_id=correlation_id,
                    image_length=len(image_base64))

        if self.latency_seconds:
            await asyncio.sleep(self.latency_seconds)

        result = ExtractionResult(
            total_amount=35000,  # 350.00 Baht
            currency=self.currency,
            tax_amount=2280,     # 22.80 Baht (7% VAT)
            vendor_name="ร้านกาแฟดี (Mock Cafe)",
            issue_date=date(2026, 1, 22),
            raw_text="Mock receipt text: Latte x2, Sandwich x1",
            confidence=0.95,
            line_items=[
                LineItem(description="Latte", quantity=2, unit_price=8000, total=16000),
                LineItem(description="Sandwich", quantity=1, unit_price=12000, total=12000),
            ],
        )

        logger.info("mock_claude_extract_success",
                   correlation_id=correlation_id,
                   amount=result.total_amount)
        return result
