"""Tests for ResourceGovernor admission control."""

import pytest

from shared.helper.HelperResources import ResourceGovernor


def test_try_acquire_respects_threshold(helper_config):
    governor = ResourceGovernor(helper_config, memory_probe=lambda: 300.0)

    assert governor.try_acquire(80, threshold_mb=400) is True
    assert governor.get_reserved_mb() == 80
    assert governor.try_acquire(80, threshold_mb=400) is False

    governor.release(80)
    assert governor.get_reserved_mb() == 0


def test_default_threshold_from_environment(helper_config, monkeypatch):
    monkeypatch.setenv("CONTEXT_MEMORY_THRESHOLD_MB", "250")
    governor = ResourceGovernor(helper_config, memory_probe=lambda: 200.0)
    assert governor.default_threshold_mb == 250
    assert governor.try_acquire(80) is False


def test_real_probe_reports_positive_usage(helper_config):
    assert ResourceGovernor(helper_config).get_memory_usage_mb() > 0


@pytest.mark.asyncio
async def test_admission_releases_after_block(helper_config):
    governor = ResourceGovernor(helper_config, memory_probe=lambda: 100.0)
    async with governor.admission(80, threshold_mb=400) as admitted:
        assert admitted is True
        assert governor.get_reserved_mb() == 80
    assert governor.get_reserved_mb() == 0


@pytest.mark.asyncio
async def test_admission_recovers_after_relief(helper_config, monkeypatch):
    readings = iter([500.0, 500.0, 100.0])
    governor = ResourceGovernor(helper_config, memory_probe=lambda: next(readings), pause_before_gc=0, pause_after_gc=0)
    monkeypatch.setattr("shared.helper.HelperResources.gc.collect", lambda: 0)

    async with governor.admission(80, threshold_mb=400) as admitted:
        assert admitted is True
    assert governor.get_reserved_mb() == 0
