"""Tests for configuration helpers."""

from pathlib import Path

import pytest

from treepager import config
from treepager.config import LoaderConfig, resolve_data_directory


def test_loader_defaults() -> None:
    settings = LoaderConfig()
    assert settings.chunk_size == config.DEFAULT_CHUNK_SIZE
    assert settings.max_loaded_items == config.MAX_LOADED_ITEMS


@pytest.mark.parametrize("field", ["chunk_size", "max_loaded_items", "latency_window"])
def test_loader_rejects_non_positive_sizes(field: str) -> None:
    with pytest.raises(ValueError, match=field):
        LoaderConfig(**{field: 0})


def test_loader_clamps_negative_tunables() -> None:
    settings = LoaderConfig(
        initial_load_size=-5,
        load_ahead_factor=-1.0,
        unload_threshold=-2.0,
        cache_size=-1,
        debounce_delay=-0.5,
    )
    assert settings.initial_load_size == 0
    assert settings.load_ahead_factor == 0.0
    assert settings.unload_threshold == 0.0
    assert settings.cache_size == 0
    assert settings.debounce_delay == 0.0


def test_data_directory_from_environment(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("TREEPAGER_DATA_DIR", str(tmp_path / "data"))
    assert resolve_data_directory() == tmp_path / "data"


def test_data_directory_first_existing(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    missing = tmp_path / "missing"
    existing = tmp_path / "existing"
    existing.mkdir()
    monkeypatch.delenv("TREEPAGER_DATA_DIR", raising=False)
    monkeypatch.setattr(config, "DATA_DIRECTORIES", [missing, existing])
    assert resolve_data_directory() == existing

    monkeypatch.setattr(config, "DATA_DIRECTORIES", [missing])
    assert resolve_data_directory() == missing
