from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import yaml
from dotenv import load_dotenv

_DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / "config" / "defaults.yaml"
load_dotenv()


def _bool_from_env(value: str | None) -> Optional[bool]:
    if value is None:
        return None
    value = value.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    return None


def _merge_dicts(base: Dict, overrides: Mapping) -> Dict:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), Mapping):
            merged[key] = _merge_dicts(base[key], value)
        else:
            merged[key] = value
    return merged


def _load_yaml(path: Path) -> Dict:
    if not path.exists():
        return {}
    return yaml.safe_load(path.read_text()) or {}


@dataclass
class SchedulerConfig:
    cron: str = "0 */3 * * *"
    enabled: bool = False


@dataclass
class LoggingConfig:
    level: str = "INFO"
    json: bool = True


@dataclass
class WeatherConfig:
    base_url: str = "https://api.openweathermap.org/data/2.5"
    units: str = "imperial"
    timeout: float = 10.0
    api_key: Optional[str] = None


@dataclass
class AdvisoryConfig:
    base_url: str = "https://api.anthropic.com"
    model: str = "claude-sonnet-4-20250514"
    api_version: str = "2023-06-01"
    max_tokens: int = 600
    temperature: float = 0.6
    timeout: float = 30.0
    api_key: Optional[str] = None


@dataclass
class ScanConfig:
    window_days: int = 7
    forecast_days: int = 7
    fetch_timeout: float = 15.0


@dataclass
class MinimumsSettings:
    min_visibility_miles: float
    max_wind_knots: float
    allowed_categories: List[str] = field(default_factory=list)


@dataclass
class AppConfig:
    weather: WeatherConfig = field(default_factory=WeatherConfig)
    advisory: AdvisoryConfig = field(default_factory=AdvisoryConfig)
    scan: ScanConfig = field(default_factory=ScanConfig)
    minimums: Dict[str, MinimumsSettings] = field(default_factory=dict)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    roster_path: Optional[str] = None


def load_config(*, config_path: str | None = None, env: Mapping[str, str] | None = None) -> AppConfig:
    env = dict(os.environ if env is None else env)
    data = _load_yaml(_DEFAULT_CONFIG_PATH)

    explicit_path = config_path or env.get("UPWIND_CONFIG_PATH")
    if explicit_path:
        data = _merge_dicts(data, _load_yaml(Path(explicit_path)))

    scheduler_data = dict(data.get("scheduler") or {})
    cron_override = env.get("UPWIND_SCHEDULER_CRON")
    if cron_override:
        scheduler_data["cron"] = cron_override
    enabled_override = _bool_from_env(env.get("UPWIND_SCHEDULER_ENABLED"))
    if enabled_override is not None:
        scheduler_data["enabled"] = enabled_override

    logging_data = dict(data.get("logging") or {})
    level_override = env.get("UPWIND_LOG_LEVEL")
    if level_override:
        logging_data["level"] = level_override
    json_override = _bool_from_env(env.get("UPWIND_LOG_JSON"))
    if json_override is not None:
        logging_data["json"] = json_override

    # Credentials only ever come from the environment.
    weather_data = dict(data.get("weather") or {})
    weather_data["api_key"] = env.get("OPENWEATHER_API_KEY") or None

    advisory_data = dict(data.get("advisory") or {})
    advisory_data["api_key"] = env.get("ANTHROPIC_API_KEY") or None
    model_override = env.get("UPWIND_ADVISORY_MODEL")
    if model_override:
        advisory_data["model"] = model_override

    minimums = {
        level: MinimumsSettings(**details) for level, details in (data.get("minimums") or {}).items()
    }

    return AppConfig(
        weather=WeatherConfig(**weather_data),
        advisory=AdvisoryConfig(**advisory_data),
        scan=ScanConfig(**(data.get("scan") or {})),
        minimums=minimums,
        scheduler=SchedulerConfig(**scheduler_data) if scheduler_data else SchedulerConfig(),
        logging=LoggingConfig(**logging_data) if logging_data else LoggingConfig(),
        roster_path=env.get("UPWIND_ROSTER_PATH") or data.get("roster_path"),
    )


app_config = load_config()
