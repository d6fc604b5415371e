from __future__ import annotations

from dataclasses import replace

import pytest

from voiceshop.gemini_client import GeminiClient, _normalize_model_name


def test_missing_api_key_is_rejected(settings):
    with pytest.raises(ValueError):
        GeminiClient(replace(settings, gemini_api_key=""))


def test_model_name_normalization():
    assert _normalize_model_name(" models/gemini-2.5-flash ") == "gemini-2.5-flash"
    assert _normalize_model_name("gemini-2.5-pro") == "gemini-2.5-pro"
    assert _normalize_model_name(None) == ""
