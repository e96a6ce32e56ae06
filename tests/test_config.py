import pytest
import yaml

from cidrmath.config import Settings, config_file, load_settings, settings_from_dict
from cidrmath.errors import InvalidInput


def write_yaml(path, data):
    path.write_text(yaml.dump(data))
    return path


def test_defaults_without_any_file():
    settings = load_settings()
    assert settings.source is None
    assert settings.engine.exact_iteration_cap == 1000
    assert settings.engine.minimal_cover_iteration_cap == 100
    assert settings.allocation.policy == "first-fit"
    assert not config_file().exists()


def test_create_writes_xdg_default(isolated_config):
    settings = load_settings(create=True)
    assert config_file() == isolated_config / "xdg" / "cidrmath" / "config.yaml"
    assert config_file().exists()
    assert settings.source == str(config_file())
    assert settings.to_dict() == Settings().to_dict()


def test_explicit_file_wins(isolated_config):
    write_yaml(isolated_config / "config.yaml", {"engine": {"display_cap": 5}})
    path = write_yaml(isolated_config / "custom.yaml", {"engine": {"sort_output": True}})
    settings = load_settings(path)
    assert settings.engine.sort_output is True
    assert settings.engine.display_cap == 1_000_000


def test_legacy_file_in_working_directory(isolated_config):
    write_yaml(isolated_config / "config.yaml", {"allocation": {"policy": "best-fit", "max_candidates": 3}})
    settings = load_settings()
    assert settings.allocation.policy == "best-fit"
    assert settings.allocation.max_candidates == 3


@pytest.mark.parametrize(
    "data",
    [
        {"engine": {"display_cap": "lots"}},
        {"engine": {"exact_iteration_cap": True}},
        {"allocation": {"usable_hosts": 1}},
        {"engine": ["not", "a", "mapping"]},
        ["not", "a", "mapping"],
    ],
)
def test_rejects_bad_values(data):
    with pytest.raises(InvalidInput):
        settings_from_dict(data)


def test_unknown_keys_are_ignored():
    settings = settings_from_dict({"engine": {"colour": "blue"}, "other": 1})
    assert settings.to_dict() == Settings().to_dict()


def test_unparseable_yaml(isolated_config):
    path = isolated_config / "broken.yaml"
    path.write_text("engine: [unclosed\n")
    with pytest.raises(InvalidInput):
        load_settings(path)


@pytest.mark.parametrize(
    "data",
    [
        {"engine": {"exact_iteration_cap": 0}},
        {"engine": {"minimal_cover_iteration_cap": -5}},
        {"engine": {"overshoot_divisor": 0}},
        {"engine": {"display_cap": -1}},
        {"allocation": {"max_candidates": 0}},
        {"allocation": {"policy": "worst-fit"}},
        {"allocation": {"strategy": "random"}},
    ],
)
def test_rejects_out_of_range_values(data):
    with pytest.raises(InvalidInput):
        settings_from_dict(data)


def test_accepts_every_known_choice():
    settings = settings_from_dict({"allocation": {"policy": "best-fit", "strategy": "preserve-order"}})
    assert settings.allocation.policy == "best-fit"
    assert settings.allocation.strategy == "preserve-order"
