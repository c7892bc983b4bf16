import pytest

from receipt_ocr.common.config import Settings
from receipt_ocr.common.schemas.extraction import ProviderKind
from receipt_ocr.parsers.ocr.factory import (
    create_cheap_provider,
    create_precise_provider,
    create_raw_text_extractor,
)
from receipt_ocr.parsers.ocr.provider_claude import ClaudeVisionProvider, MockClaudeProvider
from receipt_ocr.parsers.ocr.provider_groq import GroqTextProvider, MockGroqProvider
from receipt_ocr.parsers.ocr.raw_text import StaticTextExtractor
from receipt_ocr.routing import hybrid_router
from receipt_ocr.routing.hybrid_router import create_hybrid_router, extract_receipt, get_hybrid_router


@pytest.fixture
def no_api_keys(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.delenv("GROQ_API_KEY", raising=False)


@pytest.fixture
def fresh_default_router(monkeypatch):
    monkeypatch.setattr(hybrid_router, "_default_router", None)


def dev_settings(**overrides):
    return Settings(_env_file=None, app_mode="DEV", metrics_enabled=False, **overrides)


def test_dev_mode_builds_mock_providers():
    settings = dev_settings()

    assert isinstance(create_precise_provider(settings), MockClaudeProvider)
    assert isinstance(create_cheap_provider(settings), MockGroqProvider)
    assert isinstance(create_raw_text_extractor(settings), StaticTextExtractor)


def test_prod_mode_builds_real_providers():
    settings = Settings(
        _env_file=None,
        app_mode="PROD",
        anthropic_api_key="sk-ant-test",
        groq_api_key="gsk_test",
        groq_model="llama-test",
    )

    precise = create_precise_provider(settings)
    cheap = create_cheap_provider(settings)

    assert isinstance(precise, ClaudeVisionProvider)
    assert isinstance(cheap, GroqTextProvider)
    assert cheap.model == "llama-test"


def test_prod_mode_without_keys_fails_fast(no_api_keys):
    settings = Settings(_env_file=None, app_mode="PROD")

    with pytest.raises(ValueError):
        create_precise_provider(settings)
    with pytest.raises(ValueError):
        create_cheap_provider(settings)


def test_create_hybrid_router_applies_settings():
    router = create_hybrid_router(dev_settings(
        max_cheap_attempts=2,
        fallback_enabled=False,
        simple_confidence_threshold=0.9,
        precise_unit_cost=1.0,
    ))

    assert router.max_cheap_attempts == 2
    assert router.fallback_enabled is False
    assert router.simple_confidence_threshold == 0.9
    assert router.metrics.precise_unit_cost == 1.0


def test_default_router_is_singleton(fresh_default_router):
    assert get_hybrid_router() is get_hybrid_router()


@pytest.mark.asyncio
async def test_module_level_extract_receipt(fresh_default_router, monkeypatch):
    monkeypatch.setenv("APP_MODE", "DEV")
    monkeypatch.setenv("METRICS_ENABLED", "false")

    result = await extract_receipt("bW9jay1yZWNlaXB0", correlation_id="rcpt-mod")

    # The heuristic classifier treats tiny images as complex
    assert result.provider is ProviderKind.PRECISE
    assert result.total_amount == 35000
    assert get_hybrid_router().get_metrics().total_requests == 1
