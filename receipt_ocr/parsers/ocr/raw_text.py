"""
Raw Text Extractors - first stage of the cheap (Groq) path

The Groq provider only reads text, so simple receipts are first run
through a plain OCR engine:
- TextractTextExtractor: AWS Textract (production)
- StaticTextExtractor: returns a fixed sample transcript (DEV mode)
"""
import asyncio
import base64
import binascii
from typing import Optional

import boto3
import structlog

from receipt_ocr.common.schemas.extraction import ProviderKind
from receipt_ocr.parsers.ocr.base import ProviderInvocationFailed

logger = structlog.get_logger()


SAMPLE_RECEIPT_TEXT = """7-ELEVEN
สาขา 12345
กรุงเทพฯ

กาแฟ            45.00
ขนมปัง          35.00
────────────────
รวม             80.00
ภาษี 7%          5.60
────────────────
รวมทั้งสิ้น      85.60

วันที่ 22/01/2569
เวลา 14:35"""


class StaticTextExtractor:
    """Returns the same transcript for every image"""

    def __init__(self, text: str = SAMPLE_RECEIPT_TEXT):
        self.text = text

    async def extract_raw_text(self, image_base64: str, correlation_id: str) -> str:
        return self.text


class TextractTextExtractor:
    """
    AWS Textract text detection.

    detect_document_text is a blocking boto3 call, so it runs in a worker
    thread to keep other requests moving.
    """

    def __init__(self, aws_region: str = "us-east-1", client: Optional[object] = None):
        """
        Initialize Textract extractor.

        Args:
            aws_region: AWS region for Textract API
            client: Pre-built boto3 Textract client
        """
        self.textract = client or boto3.client('textract', region_name=aws_region)
        self.region = aws_region
        logger.info("textract_text_extractor_initialized", region=aws_region)

    async def extract_raw_text(self, image_base64: str, correlation_id: str) -> str:
        """
        Extract LINE blocks from the image as newline-joined text.

        Raises:
            ProviderInvocationFailed: If the image can't be decoded, Textract
                fails, or no text is found
        """
        try:
            image_bytes = base64.b64decode(image_base64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ProviderInvocationFailed(
                "Image is not valid base64",
                provider=ProviderKind.CHEAP,
                correlation_id=correlation_id,
            ) from e

        logger.info("calling_textract",
                   correlation_id=correlation_id,
                   size_bytes=len(image_bytes))

        try:
            response = await asyncio.to_thread(
                self.textract.detect_document_text,
                Document={'Bytes': image_bytes},
            )
        except Exception as e:
            logger.error("textract_failed",
                        correlation_id=correlation_id,
                        error=str(e),
                        exc_info=True)
            raise ProviderInvocationFailed(
                f"Textract extraction failed: {e}",
                provider=ProviderKind.CHEAP,
                correlation_id=correlation_id,
            ) from e

        text_blocks = [
            block['Text']
            for block in response.get('Blocks', [])
            if block.get('BlockType') == 'LINE'
        ]
        text = '\n'.join(text_blocks)

        if not text.strip():
            raise ProviderInvocationFailed(
                "Textract found no text on the receipt",
                provider=ProviderKind.CHEAP,
                correlation_id=correlation_id,
            )

        logger.info("textract_complete",
                   correlation_id=correlation_id,
                   chars=len(text),
                   lines=len(text_blocks))
        return text
