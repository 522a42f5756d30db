"""Tests for HelperConfig environment getters."""

import pytest


def test_string_val_strips_and_defaults(helper_config, monkeypatch):
    monkeypatch.setenv("SOME_NAME", "  value  ")
    assert helper_config.get_string_val("some_name") == "value"
    assert helper_config.get_string_val("MISSING_NAME", default="fallback") == "fallback"


def test_missing_required_value_raises(helper_config):
    with pytest.raises(ValueError, match="MISSING_NAME"):
        helper_config.get_string_val("MISSING_NAME")


def test_number_val_parses_int_and_float(helper_config, monkeypatch):
    monkeypatch.setenv("AN_INT", "42")
    monkeypatch.setenv("A_FLOAT", "0.5")
    monkeypatch.setenv("NOT_A_NUMBER", "abc")
    assert helper_config.get_number_val("AN_INT") == 42
    assert helper_config.get_number_val("A_FLOAT") == 0.5
    with pytest.raises(ValueError, match="not a valid number"):
        helper_config.get_number_val("NOT_A_NUMBER")


def test_bool_val(helper_config, monkeypatch):
    monkeypatch.setenv("FLAG_ON", "Yes")
    monkeypatch.setenv("FLAG_OFF", "false")
    assert helper_config.get_bool_val("FLAG_ON") is True
    assert helper_config.get_bool_val("FLAG_OFF") is False
    assert helper_config.get_bool_val("FLAG_UNSET", default=True) is True


def test_list_val_requires_brackets(helper_config, monkeypatch):
    monkeypatch.setenv("SIZES", "[1, 2,3]")
    monkeypatch.setenv("BAD_LIST", "1,2")
    assert helper_config.get_list_val("SIZES", element_type=int) == [1, 2, 3]
    with pytest.raises(ValueError, match="format"):
        helper_config.get_list_val("BAD_LIST")


def test_int_and_float_vals_enforce_minimum(helper_config, monkeypatch):
    monkeypatch.setenv("BATCH_SIZE", "0")
    monkeypatch.setenv("DELAY", "0.25")
    assert helper_config.get_int_val("BATCH_SIZE") == 0
    with pytest.raises(ValueError, match="at least 1"):
        helper_config.get_int_val("BATCH_SIZE", minimum=1)
    assert helper_config.get_float_val("DELAY", minimum=0) == 0.25
    assert helper_config.get_int_val("UNSET_SIZE", default=10, minimum=1) == 10


def test_path_val_resolves_against_root_dir(helper_config, monkeypatch, tmp_path):
    monkeypatch.setenv("ROOT_DIR", str(tmp_path))
    monkeypatch.setenv("ABSOLUTE_DIR", str(tmp_path / "abs"))
    monkeypatch.delenv("RELATIVE_DIR", raising=False)
    assert helper_config.get_path_val("ABSOLUTE_DIR") == tmp_path / "abs"
    assert helper_config.get_path_val("RELATIVE_DIR", default="uploads") == tmp_path / "uploads"
    with pytest.raises(ValueError):
        helper_config.get_path_val("RELATIVE_DIR")
