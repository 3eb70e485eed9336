"""Application settings: config YAML profiles plus env overrides via Pydantic Settings."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from novapulse.config.constants import DAY_MS

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_CONFIG_DIR = _PROJECT_ROOT / "config"


def _load_yaml(profile: str = "default") -> dict[str, Any]:
    """Load and merge YAML config files.

    Loads ``default.yaml`` first, then overlays the requested profile.
    """
    base: dict[str, Any] = {}
    default_path = _CONFIG_DIR / "default.yaml"
    if default_path.exists():
        with open(default_path) as f:
            base = yaml.safe_load(f) or {}

    if profile != "default":
        overlay_path = _CONFIG_DIR / f"{profile}.yaml"
        if overlay_path.exists():
            with open(overlay_path) as f:
                overlay = yaml.safe_load(f) or {}
            base = _deep_merge(base, overlay)
    return base


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge *override* into *base* (override wins)."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------

class _Section(BaseSettings):
    """Settings section; ``NOVAPULSE_<SECTION>__<FIELD>`` env vars beat YAML."""

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return env_settings, dotenv_settings, init_settings, file_secret_settings


def _section_config(name: str) -> SettingsConfigDict:
    return SettingsConfigDict(
        env_prefix=f"NOVAPULSE_{name.upper()}__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


class DetectionSettings(_Section):
    """Core accumulation thresholds and whale-flow floors."""

    model_config = _section_config("detection")

    scan_interval_ms: int = 500
    standard_history_size: int = 60
    price_scale: float = 1e9
    min_accumulation_score: float = 92.0
    min_whale_net_flow: float = 6000.0
    min_accumulation_buy: float = 120000.0
    accumulation_ratio_threshold: float = 3.25
    pro_trader_min_amount: float = 6000.0
    cluster_time_window_ms: int = 4500
    min_cluster_size: int = 5
    explosion_threshold: float = 1.028
    hyperspeed_threshold: float = 1.012
    hyperspeed_volume_ratio: float = 3.2
    min_strength_duration_ms: int = 3200
    cooldown_period_ms: int = 5000
    volatility_threshold: float = 0.15
    consolidation_period: int = 5


class ShockwaveSettings(_Section):
    """Explosion-odds, RSI, VWAP and convergence parameters."""

    model_config = _section_config("shockwave")

    max_false_signal_history: int = 20
    rsi_period: int = 14
    rsi_overbought_threshold: float = 70.0
    vwap_retest_threshold: float = 0.01
    timeframe_convergence_threshold: float = 0.7


class ScalpingSettings(_Section):
    model_config = _section_config("scalping")

    scalping_mode: bool = True
    scalping_timeframe_s: int = 5
    instant_buy_pressure_threshold: float = 0.75
    min_instant_volume_ratio: float = 3.0
    max_history_size: int = 120


class PatternSettings(_Section):
    model_config = _section_config("patterns")

    micro_range_threshold: float = 0.008
    vdu_spike_threshold: float = 4.5
    trap_run_volume_ratio: float = 3.0
    shakeout_bar_threshold: float = 0.05
    volume_staircase_min_steps: int = 3
    darvas_box_size: float = 0.015
    box_breakout_threshold: float = 1.02
    hidden_divergence_period: int = 10


class LifecycleSettings(_Section):
    """Trade-lifecycle hysteresis (accumulation end / resume / expiry)."""

    model_config = _section_config("lifecycle")

    alerts_enabled: bool = True
    dump_confirmation_threshold: float = 0.60
    panic_sell_volume_multiplier: float = 3.0
    accumulation_end_confirmation: float = 2.5
    reassurance_interval_ms: int = 10000
    resume_score: float = 75.0
    exit_score: float = 60.0
    max_end_alerts: int = 5
    max_trade_duration_ms: int = 30 * 60 * 1000


class MegaSettings(_Section):
    model_config = _section_config("mega")

    mega_accumulation_threshold: float = 95.0
    mega_pro_traders_threshold: int = 15
    mega_buy_volume_threshold: float = 250000.0
    mega_volatility_threshold: float = 0.08
    mega_pattern_weight: float = 0.85
    mega_volume_ratio: float = 4.2
    mega_accumulation_cooldown_ms: int = 30000


class LearningSettings(_Section):
    """Signal grading, weight learning and instant-explosion prediction."""

    model_config = _section_config("learning")

    learning_rate: float = 0.05
    success_threshold: float = 0.02
    evaluation_period_ms: int = 30000
    signal_retention_ms: int = DAY_MS
    hyperspeed_detection_window: int = 3
    hyperspeed_confidence_threshold: float = 0.85
    instant_explosion_prediction_seconds: int = 3
    export_format: Literal["json", "csv"] = "json"


class TimeframeSpec(BaseModel):
    """One coarse series: its name, update cadence and retained length."""

    name: str
    interval_ms: int
    max_length: int


class TimeframeSettings(_Section):
    model_config = _section_config("timeframes")

    series: list[TimeframeSpec] = [
        TimeframeSpec(name="5s", interval_ms=5000, max_length=20),
        TimeframeSpec(name="15s", interval_ms=15000, max_length=15),
        TimeframeSpec(name="1m", interval_ms=60000, max_length=10),
    ]
    min_points: int = 5
    volume_multiplier: float = 1.5


class DatabaseSettings(_Section):
    model_config = _section_config("database")

    path: str = "data/novapulse.db"


class LoggingSettings(_Section):
    model_config = _section_config("logging")

    level: str = "INFO"
    format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------

_SECTIONS: dict[str, type[BaseSettings]] = {
    "detection": DetectionSettings,
    "shockwave": ShockwaveSettings,
    "scalping": ScalpingSettings,
    "patterns": PatternSettings,
    "lifecycle": LifecycleSettings,
    "mega": MegaSettings,
    "learning": LearningSettings,
    "timeframes": TimeframeSettings,
    "database": DatabaseSettings,
    "logging": LoggingSettings,
}


class Settings(BaseSettings):
    """Top-level application settings.

    Build order:
    1. Load ``config/default.yaml``
    2. Overlay profile YAML (e.g. ``standard.yaml``)
    3. Overlay the persisted configuration record, if any
    4. Override with environment variables / ``.env``
    """

    model_config = SettingsConfigDict(
        env_prefix="NOVAPULSE_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    detection: DetectionSettings = Field(default_factory=DetectionSettings)
    shockwave: ShockwaveSettings = Field(default_factory=ShockwaveSettings)
    scalping: ScalpingSettings = Field(default_factory=ScalpingSettings)
    patterns: PatternSettings = Field(default_factory=PatternSettings)
    lifecycle: LifecycleSettings = Field(default_factory=LifecycleSettings)
    mega: MegaSettings = Field(default_factory=MegaSettings)
    learning: LearningSettings = Field(default_factory=LearningSettings)
    timeframes: TimeframeSettings = Field(default_factory=TimeframeSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @property
    def history_capacity(self) -> int:
        """Sample buffer capacity for the active operating mode."""
        if self.scalping.scalping_mode:
            return self.scalping.max_history_size
        return self.detection.standard_history_size

    @property
    def tick_interval_ms(self) -> int:
        """Scheduler cadence for the active operating mode."""
        if self.scalping.scalping_mode:
            return self.scalping.scalping_timeframe_s * 1000
        return self.detection.scan_interval_ms


def load_settings(
    profile: str = "default",
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Create a ``Settings`` instance from YAML + persisted overrides.

    Parameters
    ----------
    profile:
        Config profile name (maps to ``config/<profile>.yaml``).
        Use ``"standard"`` or ``"backtest"``.
    overrides:
        Free-form configuration record (nested by section) merged on top
        of the YAML, e.g. ``{"detection": {"cooldown_period_ms": 8000}}``.
    """
    yaml_data = _load_yaml(profile)
    if overrides:
        yaml_data = _deep_merge(yaml_data, overrides)

    return Settings(
        **{
            name: section(**(yaml_data.get(name, {}) or {}))
            for name, section in _SECTIONS.items()
        }
    )
