import asyncio

import pytest

from receipt_ocr.common.schemas.extraction import AttemptErrorKind, ProviderKind
from receipt_ocr.parsers.ocr.base import ProviderInvocationFailed
from receipt_ocr.routing.hybrid_router import AllProvidersExhausted, HybridRouter

from tests.fakes import (
    COMPLEX_FEATURES,
    SIMPLE_FEATURES,
    FailingProvider,
    FixedResultProvider,
    RecordingCheapProvider,
    RecordingPreciseProvider,
    SlowProvider,
    SocketTimeoutProvider,
    make_request,
    make_result,
    make_router,
)


class FailingTextExtractor:
    async def extract_raw_text(self, image_base64, correlation_id):
        raise ProviderInvocationFailed("Textract found no text on the receipt")


@pytest.mark.asyncio
async def test_simple_receipt_uses_cheap_provider():
    cheap = RecordingCheapProvider()
    precise = RecordingPreciseProvider()
    router = make_router(cheap=cheap, precise=precise, features=SIMPLE_FEATURES)

    result = await router.extract_receipt(make_request("rcpt-a"))

    assert result.provider is ProviderKind.CHEAP
    assert result.total_amount == 8560
    assert result.confidence == 0.88
    assert len(cheap.calls) == 1
    assert cheap.calls[0][1] == "rcpt-a"
    assert precise.calls == []

    attempts = router.get_attempts()
    assert len(attempts) == 1
    assert attempts[0].provider is ProviderKind.CHEAP
    assert attempts[0].success is True
    assert attempts[0].cost == 0.05
    assert attempts[0].result == result

    metrics = router.get_metrics()
    assert metrics.total_requests == 1
    assert metrics.simple_count == 1
    assert metrics.complex_count == 0


@pytest.mark.asyncio
async def test_complex_receipt_goes_straight_to_precise_provider():
    cheap = RecordingCheapProvider()
    precise = RecordingPreciseProvider()
    router = make_router(cheap=cheap, precise=precise, features=COMPLEX_FEATURES)

    result = await router.extract_receipt(make_request("rcpt-b"))

    assert result.provider is ProviderKind.PRECISE
    assert result.total_amount == 35000
    assert cheap.calls == []
    assert len(precise.calls) == 1
    assert precise.calls[0] == ("bW9jay1yZWNlaXB0", "rcpt-b", "jpeg")

    attempts = router.get_attempts()
    assert [a.provider for a in attempts] == [ProviderKind.PRECISE]

    metrics = router.get_metrics()
    assert metrics.complex_count == 1
    assert metrics.simple_count == 0


@pytest.mark.asyncio
async def test_simple_verdict_below_threshold_goes_to_precise_provider():
    cheap = RecordingCheapProvider()
    router = make_router(cheap=cheap, features=SIMPLE_FEATURES, simple_confidence_threshold=0.9)

    result = await router.extract_receipt(make_request())

    assert result.provider is ProviderKind.PRECISE
    assert cheap.calls == []


@pytest.mark.asyncio
async def test_cheap_failure_falls_back_to_precise():
    cheap = FailingProvider("Groq returned invalid JSON")
    router = make_router(cheap=cheap, features=SIMPLE_FEATURES)

    result = await router.extract_receipt(make_request("rcpt-c"))

    assert result.provider is ProviderKind.PRECISE
    assert result.total_amount == 35000
    assert result.confidence == 0.95

    attempts = router.get_attempts()
    assert len(attempts) == 2
    failed, recovered = attempts
    assert failed.provider is ProviderKind.CHEAP
    assert failed.success is False
    assert failed.result is None
    assert failed.error == "Groq returned invalid JSON"
    assert failed.error_kind is AttemptErrorKind.PROVIDER_ERROR
    assert failed.cost == 0.0
    assert recovered.provider is ProviderKind.PRECISE
    assert recovered.success is True
    assert recovered.is_fallback is True
    assert recovered.request_id == failed.request_id
    assert recovered.sequence == 1

    metrics = router.get_metrics()
    assert metrics.total_requests == 1
    assert metrics.cheap_success_rate == 0
    assert metrics.fallback_count == 1
    assert metrics.simple_count == 1
    assert metrics.complex_count == 0
    assert metrics.total_cost == pytest.approx(0.50)


@pytest.mark.asyncio
async def test_cheap_failure_without_fallback_surfaces_to_caller():
    cheap = FailingProvider("Groq API error: 503")
    precise = RecordingPreciseProvider()
    router = make_router(cheap=cheap, precise=precise, fallback_enabled=False)

    with pytest.raises(ProviderInvocationFailed) as excinfo:
        await router.extract_receipt(make_request("rcpt-d"))

    assert not isinstance(excinfo.value, AllProvidersExhausted)
    assert excinfo.value.provider is ProviderKind.CHEAP
    assert excinfo.value.correlation_id == "rcpt-d"
    assert "Groq API error: 503" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, ProviderInvocationFailed)
    assert precise.calls == []

    attempts = router.get_attempts()
    assert len(attempts) == 1
    assert attempts[0].success is False


@pytest.mark.asyncio
async def test_precise_failure_raises_all_providers_exhausted():
    router = make_router(precise=FailingProvider("Claude API error: 401"), features=COMPLEX_FEATURES)

    with pytest.raises(AllProvidersExhausted) as excinfo:
        await router.extract_receipt(make_request("rcpt-e"))

    assert excinfo.value.provider is ProviderKind.PRECISE
    assert excinfo.value.cheap_error is None
    assert "Claude API error: 401" in str(excinfo.value)
    assert len(router.get_attempts()) == 1
    assert router.get_metrics().total_requests == 1


@pytest.mark.asyncio
async def test_both_providers_failing_records_two_attempts():
    router = make_router(
        cheap=FailingProvider("Groq API error: 500"),
        precise=FailingProvider("Claude API error: 529"),
    )

    with pytest.raises(AllProvidersExhausted) as excinfo:
        await router.extract_receipt(make_request())

    assert excinfo.value.cheap_error == "Groq API error: 500"
    assert "Claude API error: 529" in str(excinfo.value.__cause__)

    attempts = router.get_attempts()
    assert [(a.provider, a.success) for a in attempts] == [
        (ProviderKind.CHEAP, False),
        (ProviderKind.PRECISE, False),
    ]
    metrics = router.get_metrics()
    assert metrics.total_requests == 1
    assert metrics.total_cost == 0.0


@pytest.mark.asyncio
async def test_raw_text_failure_counts_as_cheap_failure():
    cheap = RecordingCheapProvider()
    router = HybridRouter(
        precise_provider=RecordingPreciseProvider(),
        cheap_provider=cheap,
        raw_text_extractor=FailingTextExtractor(),
        classifier=make_router().classifier,
        export_prometheus=False,
    )

    result = await router.extract_receipt(make_request())

    assert result.provider is ProviderKind.PRECISE
    assert cheap.calls == []
    assert router.get_attempts()[0].error == "Textract found no text on the receipt"


@pytest.mark.asyncio
async def test_cheap_retries_before_fallback():
    cheap = FailingProvider()
    router = make_router(cheap=cheap, max_cheap_attempts=3)

    result = await router.extract_receipt(make_request())

    assert result.provider is ProviderKind.PRECISE
    assert cheap.calls == 3
    attempts = router.get_attempts()
    assert [a.sequence for a in attempts] == [0, 1, 2, 3]
    metrics = router.get_metrics()
    assert metrics.total_requests == 1
    assert metrics.cheap_attempts == 3
    assert metrics.fallback_count == 1


def test_max_cheap_attempts_must_be_positive():
    with pytest.raises(ValueError):
        make_router(max_cheap_attempts=0)


@pytest.mark.asyncio
async def test_provider_timeout_is_recorded_and_falls_back():
    router = make_router(cheap=SlowProvider(), provider_timeout=0.01)

    result = await router.extract_receipt(make_request())

    assert result.provider is ProviderKind.PRECISE
    timed_out = router.get_attempts()[0]
    assert timed_out.success is False
    assert timed_out.error_kind is AttemptErrorKind.TIMEOUT


@pytest.mark.asyncio
async def test_cancelled_request_is_recorded():
    router = make_router(precise=SlowProvider(), features=COMPLEX_FEATURES)

    task = asyncio.create_task(router.extract_receipt(make_request("rcpt-x")))
    await asyncio.sleep(0.01)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    attempts = router.get_attempts()
    assert len(attempts) == 1
    assert attempts[0].success is False
    assert attempts[0].error_kind is AttemptErrorKind.CANCELLED
    assert attempts[0].correlation_id == "rcpt-x"
    assert router.get_metrics().cancelled_count == 1


@pytest.mark.asyncio
async def test_provider_result_is_not_mutated():
    original = make_result(total_amount=12345)
    router = make_router(precise=FixedResultProvider(original), features=COMPLEX_FEATURES)

    result = await router.extract_receipt(make_request())

    assert result.provider is ProviderKind.PRECISE
    assert original.provider is None
    assert result.total_amount == 12345


@pytest.mark.asyncio
async def test_concurrent_requests_are_all_counted():
    router = make_router(features=SIMPLE_FEATURES)

    await asyncio.gather(*(
        router.extract_receipt(make_request(f"rcpt-{i}")) for i in range(20)
    ))

    metrics = router.get_metrics()
    assert metrics.total_requests == 20
    assert metrics.total_attempts == 20
    assert len({a.request_id for a in router.get_attempts()}) == 20
    assert metrics.total_cost == pytest.approx(20 * 0.05)


@pytest.mark.asyncio
async def test_cheap_batch_saves_against_precise_only():
    router = make_router(features=SIMPLE_FEATURES)
    for i in range(10):
        await router.extract_receipt(make_request(f"rcpt-{i}"))

    metrics = router.get_metrics()
    assert metrics.avg_cost_per_request < 0.50
    assert metrics.savings_vs_precise_only == pytest.approx(10 * 0.50 - 10 * 0.05)
    # Groq mock confidence 0.88 is below the review threshold
    assert metrics.manual_review_rate == 1.0


@pytest.mark.asyncio
async def test_reset_metrics_clears_history():
    router = make_router()
    await router.extract_receipt(make_request())

    router.reset_metrics()

    assert router.get_attempts() == ()
    assert router.get_metrics().total_requests == 0
    assert router.get_metrics().total_cost == 0


@pytest.mark.asyncio
async def test_metrics_report_and_log():
    router = make_router(cheap=FailingProvider())
    await router.extract_receipt(make_request())

    report = router.metrics_report()

    assert "Total Receipts:       1" in report
    assert "Precise Fallbacks:    1 times" in report
    router.log_metrics()


@pytest.mark.asyncio
async def test_provider_raised_timeout_is_a_provider_error():
    router = make_router(precise=SocketTimeoutProvider(), features=COMPLEX_FEATURES)

    with pytest.raises(AllProvidersExhausted):
        await router.extract_receipt(make_request())

    failed = router.get_attempts()[0]
    assert failed.error_kind is AttemptErrorKind.PROVIDER_ERROR
    assert failed.error == "socket read timed out"


@pytest.mark.asyncio
async def test_provider_raised_timeout_within_router_timeout():
    cheap = SocketTimeoutProvider()
    router = make_router(cheap=cheap, provider_timeout=5.0)

    result = await router.extract_receipt(make_request())

    assert result.provider is ProviderKind.PRECISE
    failed = router.get_attempts()[0]
    assert failed.error_kind is AttemptErrorKind.PROVIDER_ERROR
    assert failed.error == "socket read timed out"


@pytest.mark.asyncio
async def test_precise_timeout_raises_all_providers_exhausted():
    router = make_router(precise=SlowProvider(), features=COMPLEX_FEATURES, provider_timeout=0.01)

    with pytest.raises(AllProvidersExhausted) as excinfo:
        await router.extract_receipt(make_request("rcpt-slow"))

    assert "timed out after 0.01s" in str(excinfo.value)
    attempts = router.get_attempts()
    assert len(attempts) == 1
    assert attempts[0].provider is ProviderKind.PRECISE
    assert attempts[0].error_kind is AttemptErrorKind.TIMEOUT


@pytest.mark.asyncio
async def test_cancelled_cheap_attempt_does_not_fall_back():
    precise = RecordingPreciseProvider()
    router = make_router(cheap=SlowProvider(), precise=precise, features=SIMPLE_FEATURES)

    task = asyncio.create_task(router.extract_receipt(make_request("rcpt-y")))
    await asyncio.sleep(0.01)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    attempts = router.get_attempts()
    assert len(attempts) == 1
    assert attempts[0].provider is ProviderKind.CHEAP
    assert attempts[0].error_kind is AttemptErrorKind.CANCELLED
    assert precise.calls == []
    metrics = router.get_metrics()
    assert metrics.cancelled_count == 1
    assert metrics.fallback_count == 0
