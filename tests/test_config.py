"""Tests for config module — defaults and environment overrides."""

from __future__ import annotations

import pytest

from parley.config import DistillationConfig, EngineConfig
from parley.tokens import TokenEstimator


def test_defaults():
    config = EngineConfig()
    assert config.max_context_tokens == 8000
    assert config.response_reserve == 1000
    assert config.tokenizer_encoding == "cl100k_base"
    assert config.allocation.messages == 0.75
    dist = config.distillation
    assert (dist.first_round, dist.max_round_lag, dist.undistilled_threshold) == (2, 1, 10)
    assert dist.temperature == 0.2
    assert dist.max_tokens == 2000


def test_from_env(monkeypatch):
    monkeypatch.setenv("PARLEY_MAX_CONTEXT_TOKENS", "16000")
    monkeypatch.setenv("PARLEY_RESPONSE_RESERVE", " 2000 ")
    monkeypatch.setenv("PARLEY_TOKENIZER", "o200k_base")
    config = EngineConfig.from_env()
    assert config.max_context_tokens == 16000
    assert config.response_reserve == 2000
    assert config.tokenizer_encoding == "o200k_base"


def test_from_env_without_variables(monkeypatch):
    for name in ("PARLEY_MAX_CONTEXT_TOKENS", "PARLEY_RESPONSE_RESERVE", "PARLEY_TOKENIZER"):
        monkeypatch.delenv(name, raising=False)
    assert EngineConfig.from_env() == EngineConfig()


def test_from_env_rejects_non_integer(monkeypatch):
    monkeypatch.setenv("PARLEY_MAX_CONTEXT_TOKENS", "lots")
    with pytest.raises(ValueError, match="PARLEY_MAX_CONTEXT_TOKENS"):
        EngineConfig.from_env()


def test_factories_use_settings():
    config = EngineConfig(max_context_tokens=5000, response_reserve=500)
    allocator = config.allocator()
    assert allocator.max_tokens == 5000
    assert allocator.response_reserve == 500
    assert config.scorer().weights is config.weights
    estimator = config.estimator()
    assert isinstance(estimator, TokenEstimator)
    assert estimator.encoding_name == "cl100k_base"


def test_distillation_config_is_independent():
    assert DistillationConfig(first_round=3).first_round == 3
    assert EngineConfig().distillation is not EngineConfig().distillation
