"""
Settings for the cidrmath CLI
Priority:
1. Explicit config file
2. XDG config: ~/.config/cidrmath/config.yaml
3. Legacy: ./config.yaml in current directory
"""

import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Optional

import yaml

from cidrmath.allocator import AllocationPolicy, AllocationStrategy
from cidrmath.decompose import EXACT_ITERATION_CAP, MINIMAL_COVER_ITERATION_CAP, OVERSHOOT_DIVISOR
from cidrmath.errors import InvalidInput

LEGACY_CONFIG_FILE = Path("config.yaml")

# Display totals are capped per range; exact totals live on RangeSet.size
DISPLAY_CAP = 1_000_000


def config_dir() -> Path:
    xdg_config_home = os.environ.get("XDG_CONFIG_HOME", os.path.expanduser("~/.config"))
    return Path(xdg_config_home) / "cidrmath"


def config_file() -> Path:
    return config_dir() / "config.yaml"


def _require_positive(section, name, value):
    if value < 1:
        raise InvalidInput(f"Config key '{section}.{name}' must be at least 1, got {value}")


def _require_choice(section, name, value, choices):
    allowed = [c.value for c in choices]
    if value not in allowed:
        raise InvalidInput(f"Config key '{section}.{name}' must be one of {', '.join(allowed)}, got {value!r}")


@dataclass
class EngineSettings:
    exact_iteration_cap: int = EXACT_ITERATION_CAP
    minimal_cover_iteration_cap: int = MINIMAL_COVER_ITERATION_CAP
    overshoot_divisor: int = OVERSHOOT_DIVISOR
    display_cap: int = DISPLAY_CAP
    sort_output: bool = False

    def __post_init__(self):
        for name in ("exact_iteration_cap", "minimal_cover_iteration_cap", "overshoot_divisor", "display_cap"):
            _require_positive("engine", name, getattr(self, name))


@dataclass
class AllocationSettings:
    policy: str = "first-fit"
    strategy: str = "fit-best"
    max_candidates: int = 10
    usable_hosts: bool = True

    def __post_init__(self):
        _require_choice("allocation", "policy", self.policy, AllocationPolicy)
        _require_choice("allocation", "strategy", self.strategy, AllocationStrategy)
        _require_positive("allocation", "max_candidates", self.max_candidates)


@dataclass
class Settings:
    engine: EngineSettings = field(default_factory=EngineSettings)
    allocation: AllocationSettings = field(default_factory=AllocationSettings)
    source: Optional[str] = None

    def to_dict(self) -> dict:
        return {"engine": asdict(self.engine), "allocation": asdict(self.allocation)}


def _load_section(cls, data, name):
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise InvalidInput(f"Config section '{name}' must be a mapping")

    values = {}
    for f in fields(cls):
        if f.name not in data:
            continue
        value = data[f.name]
        expected = type(getattr(cls(), f.name))
        # bool is an int subclass; keep them apart
        if type(value) is not expected:
            raise InvalidInput(
                f"Config key '{name}.{f.name}' must be {expected.__name__}, got {type(value).__name__}"
            )
        values[f.name] = value
    return cls(**values)


def settings_from_dict(data: Optional[dict]) -> Settings:
    data = data or {}
    if not isinstance(data, dict):
        raise InvalidInput("Config file must contain a mapping")
    return Settings(
        engine=_load_section(EngineSettings, data.get("engine"), "engine"),
        allocation=_load_section(AllocationSettings, data.get("allocation"), "allocation"),
    )


def write_default_config(path: Path):
    """Create default config file"""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.dump(Settings().to_dict(), f, default_flow_style=False)


def load_settings(config_path=None, create: bool = False) -> Settings:
    """Load settings, optionally writing a default XDG config when none exists"""
    if config_path:
        path = Path(config_path)
    elif config_file().exists():
        path = config_file()
    elif LEGACY_CONFIG_FILE.exists():
        path = LEGACY_CONFIG_FILE
    elif create:
        path = config_file()
        write_default_config(path)
    else:
        return Settings()

    with open(path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise InvalidInput(f"Cannot parse {path}: {e}") from None

    settings = settings_from_dict(data)
    settings.source = str(path)
    return settings
