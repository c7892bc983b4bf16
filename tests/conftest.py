"""
Test-wide fixtures and configuration.

Runs the suite in DEV mode so factories build mock providers.
"""
import os

import pytest

from receipt_ocr.common.config import get_settings


def pytest_configure(config: pytest.Config) -> None:
    os.environ.setdefault("APP_MODE", "DEV")


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
