"""
Receipt OCR - Hybrid extraction of accounting data from receipt images

Simple receipts are parsed cheaply from raw OCR text (Groq), complex ones go
straight to Claude Vision, and failed cheap attempts fall back to Claude.
Running cost and accuracy metrics are kept per router instance.

Main entry point:
    from receipt_ocr.routing import extract_receipt

    result = await extract_receipt(image_base64, correlation_id="rcpt-001")
"""

__version__ = "0.1.0"
