"""
Hybrid OCR Router

Orchestrates the decision flow for one receipt:
1. Classify receipt (simple vs complex)
2. Route simple receipts to the cheap provider (raw OCR text -> Groq)
   and complex ones to the precise provider (Claude Vision)
3. Fall back to the precise provider if the cheap path fails
4. Record every attempt and update metrics

The precise provider is the last resort: its failures always reach the
caller, while cheap-path failures are absorbed by the fallback (or surface
as ProviderInvocationFailed when fallback is disabled).
"""
import asyncio
import itertools
import time
from typing import Awaitable, Callable, Optional, Tuple

import structlog

from receipt_ocr.common.config import Settings, get_settings
from receipt_ocr.common.schemas.extraction import (
    Attempt,
    AttemptErrorKind,
    ClassificationVerdict,
    ExtractionRequest,
    ExtractionResult,
    HybridMetrics,
    ProviderKind,
)
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
from receipt_ocr.parsers.ocr.raw_text import StaticTextExtractor
from receipt_ocr.routing.classifier import ReceiptClassifier
from receipt_ocr.routing.metrics import MetricsAccumulator, format_metrics_report

logger = structlog.get_logger()


class AllProvidersExhausted(ProviderInvocationFailed):
    """
    Raised when the precise provider fails (directly or after fallback).

    The precise provider's exception is chained as __cause__; cheap_error
    holds the cheap-path reason when the request came through fallback.
    """

    def __init__(
        self,
        message: str,
        correlation_id: Optional[str] = None,
        cheap_error: Optional[str] = None,
    ):
        super().__init__(message, provider=ProviderKind.PRECISE, correlation_id=correlation_id)
        self.cheap_error = cheap_error


class HybridRouter:
    """
    Combines a cheap and a precise provider for cost optimization:
    - Simple receipts -> cheap text parsing (Groq, ~฿0.05)
    - Complex receipts -> precise vision extraction (Claude, ~฿0.50)
    - Automatic fallback on cheap-path failures

    Usage:
        router = HybridRouter(precise_provider, cheap_provider)
        result = await router.extract_receipt(
            ExtractionRequest(image_base64=image, correlation_id="rcpt-001")
        )
        print(router.get_metrics().savings_vs_precise_only)
    """

    def __init__(
        self,
        precise_provider: PreciseExtractionProvider,
        cheap_provider: CheapExtractionProvider,
        raw_text_extractor: Optional[RawTextExtractor] = None,
        classifier: Optional[ReceiptClassifier] = None,
        simple_confidence_threshold: float = 0.85,
        fallback_enabled: bool = True,
        max_cheap_attempts: int = 1,
        cheap_unit_cost: float = 0.05,
        precise_unit_cost: float = 0.50,
        manual_review_threshold: float = 0.95,
        provider_timeout: Optional[float] = None,
        export_prometheus: bool = True,
    ):
        """
        Initialize router.

        Args:
            precise_provider: Image-based provider (Claude Vision)
            cheap_provider: Text-based provider (Groq)
            raw_text_extractor: OCR engine feeding the cheap provider
            classifier: Simple/complex classifier
            simple_confidence_threshold: Minimum classifier confidence for the cheap path
            fallback_enabled: Retry failed cheap extractions with the precise provider
            max_cheap_attempts: Cheap attempts per request before fallback
            cheap_unit_cost: Cost recorded for a successful cheap attempt
            precise_unit_cost: Cost recorded for a successful precise attempt
            manual_review_threshold: Results below this confidence need manual review
            provider_timeout: Seconds before a provider call is abandoned (None = no limit)
            export_prometheus: Publish attempts as Prometheus metrics
        """
        if max_cheap_attempts < 1:
            raise ValueError(f"max_cheap_attempts must be >= 1, got {max_cheap_attempts}")

        self.precise_provider = precise_provider
        self.cheap_provider = cheap_provider
        self.raw_text_extractor = raw_text_extractor or StaticTextExtractor()
        self.classifier = classifier or ReceiptClassifier()
        self.simple_confidence_threshold = simple_confidence_threshold
        self.fallback_enabled = fallback_enabled
        self.max_cheap_attempts = max_cheap_attempts
        self.unit_costs = {
            ProviderKind.CHEAP: cheap_unit_cost,
            ProviderKind.PRECISE: precise_unit_cost,
        }
        self.provider_timeout = provider_timeout

        self.metrics = MetricsAccumulator(
            precise_unit_cost=precise_unit_cost,
            manual_review_threshold=manual_review_threshold,
            export_prometheus=export_prometheus,
        )
        self._request_ids = itertools.count(1)

        logger.info("hybrid_router_initialized",
                   simple_confidence_threshold=simple_confidence_threshold,
                   fallback_enabled=fallback_enabled,
                   max_cheap_attempts=max_cheap_attempts)

    async def extract_receipt(self, request: ExtractionRequest) -> ExtractionResult:
        """
        Extract receipt data using the hybrid strategy.

        Args:
            request: Image and correlation id

        Returns:
            ExtractionResult attributed to the provider that produced it

        Raises:
            ProviderInvocationFailed: Cheap path failed and fallback is disabled
            AllProvidersExhausted: Precise provider failed
        """
        request_id = next(self._request_ids)
        log = logger.bind(correlation_id=request.correlation_id, request_id=request_id)
        log.info("hybrid_ocr_started")

        verdict = self.classifier.classify(request.image_base64)
        log.info("receipt_classified",
                route="simple" if self.routes_to_cheap(verdict) else "complex",
                is_simple=verdict.is_simple,
                confidence=verdict.confidence,
                reason=verdict.reason)

        if self.routes_to_cheap(verdict):
            return await self._process_simple_receipt(request, request_id, log)
        return await self._process_complex_receipt(request, request_id, log)

    def routes_to_cheap(self, verdict: ClassificationVerdict) -> bool:
        """Cheap path only for confidently simple receipts"""
        return verdict.is_simple and verdict.confidence >= self.simple_confidence_threshold

    async def _process_simple_receipt(
        self,
        request: ExtractionRequest,
        request_id: int,
        log,
    ) -> ExtractionResult:
        """Cheap path: raw OCR text -> cheap provider, with optional fallback"""
        log.info("using_cheap_provider")

        error: Optional[BaseException] = None
        attempt: Optional[Attempt] = None
        for sequence in range(self.max_cheap_attempts):
            attempt, error = await self._run_attempt(
                ProviderKind.CHEAP,
                lambda: self._parse_with_cheap_provider(request),
                request,
                request_id,
                sequence,
            )
            if attempt.success:
                log.info("cheap_provider_success", duration_ms=attempt.duration_ms)
                return attempt.result

            log.warning("cheap_provider_failed",
                       attempt=sequence + 1,
                       max_attempts=self.max_cheap_attempts,
                       error=attempt.error)

        if not self.fallback_enabled:
            raise ProviderInvocationFailed(
                f"cheap provider failed: {attempt.error}",
                provider=ProviderKind.CHEAP,
                correlation_id=request.correlation_id,
            ) from error

        log.info("falling_back_to_precise")
        return await self._process_complex_receipt(
            request,
            request_id,
            log,
            sequence=self.max_cheap_attempts,
            cheap_error=attempt.error,
        )

    async def _process_complex_receipt(
        self,
        request: ExtractionRequest,
        request_id: int,
        log,
        sequence: int = 0,
        cheap_error: Optional[str] = None,
    ) -> ExtractionResult:
        """Precise path: image -> precise provider (last resort)"""
        log.info("using_precise_provider", fallback=cheap_error is not None)

        attempt, error = await self._run_attempt(
            ProviderKind.PRECISE,
            lambda: self.precise_provider.extract(
                request.image_base64,
                request.correlation_id,
                request.image_format,
            ),
            request,
            request_id,
            sequence,
            is_fallback=cheap_error is not None,
        )

        if not attempt.success:
            log.error("precise_provider_failed", error=attempt.error, cheap_error=cheap_error)
            raise AllProvidersExhausted(
                f"precise provider failed: {attempt.error}",
                correlation_id=request.correlation_id,
                cheap_error=cheap_error,
            ) from error

        log.info("precise_provider_success", duration_ms=attempt.duration_ms)
        return attempt.result

    async def _parse_with_cheap_provider(self, request: ExtractionRequest) -> ExtractionResult:
        raw_text = await self.raw_text_extractor.extract_raw_text(
            request.image_base64, request.correlation_id
        )
        return await self.cheap_provider.parse(raw_text, request.correlation_id)

    async def _run_attempt(
        self,
        provider: ProviderKind,
        call: Callable[[], Awaitable[ExtractionResult]],
        request: ExtractionRequest,
        request_id: int,
        sequence: int,
        is_fallback: bool = False,
    ) -> Tuple[Attempt, Optional[BaseException]]:
        """
        Invoke one provider and record the attempt, whatever the outcome.

        Cancellation is recorded and re-raised; every other failure is
        returned to the caller as (failed attempt, exception).
        """
        def record(**outcome) -> Attempt:
            attempt = Attempt(
                request_id=request_id,
                correlation_id=request.correlation_id,
                sequence=sequence,
                provider=provider,
                duration_ms=int((time.perf_counter() - started) * 1000),
                is_fallback=is_fallback,
                **outcome,
            )
            self.metrics.record(attempt)
            return attempt

        async def invoke() -> ExtractionResult:
            # A provider's own TimeoutError is a provider error, not router expiry
            try:
                return await call()
            except asyncio.TimeoutError as e:
                raise ProviderInvocationFailed(
                    str(e) or f"{provider.value} provider raised TimeoutError",
                    provider=provider,
                    correlation_id=request.correlation_id,
                ) from e

        started = time.perf_counter()
        try:
            if self.provider_timeout is not None:
                result = await asyncio.wait_for(invoke(), timeout=self.provider_timeout)
            else:
                result = await invoke()

        except asyncio.CancelledError:
            record(
                success=False,
                error=f"{provider.value} provider call cancelled",
                error_kind=AttemptErrorKind.CANCELLED,
            )
            raise

        except asyncio.TimeoutError as e:
            return record(
                success=False,
                error=f"{provider.value} provider timed out after {self.provider_timeout}s",
                error_kind=AttemptErrorKind.TIMEOUT,
            ), e

        except Exception as e:
            return record(
                success=False,
                error=str(e) or type(e).__name__,
                error_kind=AttemptErrorKind.PROVIDER_ERROR,
            ), e

        attributed = result.model_copy(update={"provider": provider})
        return record(
            success=True,
            cost=self.unit_costs[provider],
            result=attributed,
        ), None

    def get_metrics(self) -> HybridMetrics:
        """Current metrics snapshot"""
        return self.metrics.snapshot()

    def get_attempts(self) -> Tuple[Attempt, ...]:
        """Detailed attempt history"""
        return self.metrics.attempts()

    def reset_metrics(self) -> None:
        """Reset metrics and attempt history (useful for batches and testing)"""
        self.metrics.reset()

    def metrics_report(self) -> str:
        return format_metrics_report(self.get_metrics(), self.unit_costs[ProviderKind.PRECISE])

    def log_metrics(self) -> None:
        """Log the current metrics snapshot"""
        logger.info("hybrid_ocr_metrics", **self.get_metrics().model_dump())


def create_hybrid_router(settings: Optional[Settings] = None) -> HybridRouter:
    """Build a router with providers chosen by APP_MODE"""
    settings = settings or get_settings()

    return HybridRouter(
        precise_provider=create_precise_provider(settings),
        cheap_provider=create_cheap_provider(settings),
        raw_text_extractor=create_raw_text_extractor(settings),
        classifier=ReceiptClassifier(brightness_threshold=settings.brightness_threshold),
        simple_confidence_threshold=settings.simple_confidence_threshold,
        fallback_enabled=settings.fallback_enabled,
        max_cheap_attempts=settings.max_cheap_attempts,
        cheap_unit_cost=settings.cheap_unit_cost,
        precise_unit_cost=settings.precise_unit_cost,
        manual_review_threshold=settings.manual_review_threshold,
        provider_timeout=settings.provider_timeout_seconds,
        export_prometheus=settings.metrics_enabled,
    )


# Singleton router instance (configured from environment)
_default_router: Optional[HybridRouter] = None


def get_hybrid_router() -> HybridRouter:
    """
    Get the default hybrid router (singleton).

    Configured from environment variables, see receipt_ocr.common.config.
    """
    global _default_router

    if _default_router is None:
        settings = get_settings()
        _default_router = create_hybrid_router(settings)
        logger.info("default_hybrid_router_created", app_mode=settings.app_mode)

    return _default_router


async def extract_receipt(
    image_base64: str,
    correlation_id: str,
    image_format: str = "jpeg",
) -> ExtractionResult:
    """
    Convenience function for extraction using the default router.

    Example:
        ```python
        from receipt_ocr.routing import extract_receipt

        result = await extract_receipt(image_base64, correlation_id="rcpt-001")
        print(f"Total: ฿{result.total_amount / 100:.2f} via {result.provider.value}")
        ```
    """
    request = ExtractionRequest(
        image_base64=image_base64,
        correlation_id=correlation_id,
        image_format=image_format,
    )
    return await get_hybrid_router().extract_receipt(request)
