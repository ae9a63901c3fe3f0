"""
Decision Pipeline - Configuration.

============================================================
PURPOSE
============================================================
Explicit configuration for scoring thresholds, the auto-apply
pilot, drift classification and the stock allocator.

Configuration is passed into constructors. No component reads
process-wide state at evaluation time.

============================================================
CONFIGURATION SOURCES
============================================================
1. Dataclass defaults
2. load_config_from_dict() for file / API supplied settings
3. load_config_from_env() for DECISION_* / ALLOCATOR_* /
   TRANSFER_* environment variables (.env supported)

============================================================
"""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional
import os

from dotenv import load_dotenv

from core.exceptions import InvalidConfigError


# ============================================================
# SCORING THRESHOLDS
# ============================================================

@dataclass(frozen=True)
class ScoringThresholds:
    """
    Band thresholds for the scoring engine.

    band = auto    if score >= auto_apply_min
           propose if score >= propose_min
           discard otherwise
    """

    auto_apply_min: float = 0.65
    """Minimum score for the auto band."""

    propose_min: float = 0.15
    """Minimum score for the propose band."""

    def __post_init__(self) -> None:
        for name in ("auto_apply_min", "propose_min"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise InvalidConfigError(name, value, "must be within [0, 1]")
        if self.propose_min > self.auto_apply_min:
            raise InvalidConfigError(
                "propose_min",
                self.propose_min,
                f"must not exceed auto_apply_min ({self.auto_apply_min})",
            )


# ============================================================
# POLICY (AUTO-APPLY PILOT)
# ============================================================

@dataclass
class PolicyConfig:
    """Orchestrator behaviour switches."""

    cooloff_hours: int = 24
    """Minimum hours between two auto-applies on the same subject."""

    auto_apply_pricing: bool = False
    """Feature flag for the pricing auto-apply pilot."""

    persist_blocked: bool = False
    """Persist guardrail-blocked contexts as proposals with their trace."""

    def __post_init__(self) -> None:
        if self.cooloff_hours < 0:
            raise InvalidConfigError("cooloff_hours", self.cooloff_hours, "must be >= 0")


# ============================================================
# DRIFT
# ============================================================

@dataclass
class DriftConfig:
    """PSI classification thresholds."""

    psi_warn: float = 0.15
    psi_critical: float = 0.25
    epsilon: float = 1e-9
    """Floor applied to each bucket fraction."""

    def __post_init__(self) -> None:
        if self.epsilon <= 0:
            raise InvalidConfigError("epsilon", self.epsilon, "must be > 0")
        if self.psi_warn > self.psi_critical:
            raise InvalidConfigError("psi_warn", self.psi_warn, "must not exceed psi_critical")


# ============================================================
# STOCK ALLOCATOR
# ============================================================

@dataclass
class AllocatorConfig:
    """Tuning for the balanced stock allocator."""

    reserve_min_units: int = 5
    """Minimum units kept at the hub."""

    reserve_percent: float = 0.20
    """Additional hub reserve as a fraction of warehouse stock."""

    seed_qty_zero: int = 3
    """Units sent to an outlet with zero stock."""

    topup_low_to: int = 10
    """Target level for outlets holding fewer than 5 units."""

    mid_topup: int = 5
    """Fixed nudge for outlets holding fewer than 20 units."""

    max_per_store: int = 40
    """Per-store cap per product."""

    proportional_share: float = 0.20
    """Fraction of the remaining surplus spread by weight."""

    default_turnover_pct: float = 5.0
    """Weight used when neither a weight nor a turnover rate is known."""

    def __post_init__(self) -> None:
        for name in ("reserve_min_units", "seed_qty_zero", "topup_low_to", "mid_topup"):
            if getattr(self, name) < 0:
                raise InvalidConfigError(name, getattr(self, name), "must be >= 0")
        if self.max_per_store < 1:
            raise InvalidConfigError("max_per_store", self.max_per_store, "must be >= 1")
        if not 0.0 <= self.reserve_percent <= 1.0:
            raise InvalidConfigError("reserve_percent", self.reserve_percent, "must be within [0, 1]")
        if not 0.0 <= self.proportional_share <= 1.0:
            raise InvalidConfigError("proportional_share", self.proportional_share, "must be within [0, 1]")


# ============================================================
# TRANSFER POLICY
# ============================================================

@dataclass
class TransferPolicyConfig:
    """Demand-signal to transfer-order conversion."""

    safety_stock_days: int = 7
    max_move_qty: int = 200
    auto_create: bool = False
    """Create orders even below the confidence threshold."""

    default_source_hub: str = "HUB_MAIN"
    confidence_threshold: float = 0.70

    def __post_init__(self) -> None:
        if self.max_move_qty < 1:
            raise InvalidConfigError("max_move_qty", self.max_move_qty, "must be >= 1")
        if self.safety_stock_days < 0:
            raise InvalidConfigError("safety_stock_days", self.safety_stock_days, "must be >= 0")


# ============================================================
# AGGREGATE
# ============================================================

@dataclass
class PipelineConfig:
    """Complete configuration for the decision pipeline."""

    scoring: ScoringThresholds = field(default_factory=ScoringThresholds)
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    drift: DriftConfig = field(default_factory=DriftConfig)
    allocator: AllocatorConfig = field(default_factory=AllocatorConfig)
    transfers: TransferPolicyConfig = field(default_factory=TransferPolicyConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration as a nested dictionary."""
        return {
            section.name: {
                f.name: getattr(getattr(self, section.name), f.name)
                for f in fields(getattr(self, section.name))
            }
            for section in fields(self)
        }


# ============================================================
# PRESET FACTORIES
# ============================================================

def get_default_config() -> PipelineConfig:
    """Default configuration. Auto-apply disabled."""
    return PipelineConfig()


def get_pilot_config() -> PipelineConfig:
    """Configuration with the pricing auto-apply pilot enabled."""
    config = PipelineConfig()
    config.policy.auto_apply_pricing = True
    return config


def load_config_from_dict(data: Dict[str, Any]) -> PipelineConfig:
    """
    Load configuration from dictionary.

    Unknown keys are rejected so typos do not silently fall
    back to defaults.

    Args:
        data: Nested configuration dictionary

    Returns:
        PipelineConfig instance
    """
    config = get_default_config()
    sections = {
        "scoring": ScoringThresholds,
        "policy": PolicyConfig,
        "drift": DriftConfig,
        "allocator": AllocatorConfig,
        "transfers": TransferPolicyConfig,
    }

    for name, section_data in data.items():
        if name not in sections:
            raise InvalidConfigError(name, section_data, "unknown configuration section")
        cls = sections[name]
        allowed = {f.name for f in fields(cls)}
        unknown = set(section_data) - allowed
        if unknown:
            raise InvalidConfigError(name, sorted(unknown), "unknown configuration keys")
        current = getattr(config, name)
        merged = {f.name: getattr(current, f.name) for f in fields(cls)}
        merged.update(section_data)
        setattr(config, name, cls(**merged))

    return config


# ============================================================
# ENVIRONMENT
# ============================================================

_ENV_KEYS = {
    "DECISION_AUTO_APPLY_MIN": ("scoring", "auto_apply_min", float),
    "DECISION_PROPOSE_MIN": ("scoring", "propose_min", float),
    "DECISION_COOLOFF_HOURS": ("policy", "cooloff_hours", int),
    "DECISION_AUTO_APPLY_PRICING": ("policy", "auto_apply_pricing", "bool"),
    "DECISION_PERSIST_BLOCKED": ("policy", "persist_blocked", "bool"),
    "DECISION_PSI_WARN": ("drift", "psi_warn", float),
    "DECISION_PSI_CRITICAL": ("drift", "psi_critical", float),
    "ALLOCATOR_RESERVE_MIN_UNITS": ("allocator", "reserve_min_units", int),
    "ALLOCATOR_RESERVE_PERCENT": ("allocator", "reserve_percent", float),
    "ALLOCATOR_SEED_QTY_ZERO": ("allocator", "seed_qty_zero", int),
    "ALLOCATOR_TOPUP_LOW_TO": ("allocator", "topup_low_to", int),
    "ALLOCATOR_MID_TOPUP": ("allocator", "mid_topup", int),
    "ALLOCATOR_MAX_PER_STORE": ("allocator", "max_per_store", int),
    "ALLOCATOR_PROPORTIONAL_SHARE": ("allocator", "proportional_share", float),
    "TRANSFER_SAFETY_STOCK_DAYS": ("transfers", "safety_stock_days", int),
    "TRANSFER_MAX_MOVE_QTY": ("transfers", "max_move_qty", int),
    "TRANSFER_AUTO_CREATE": ("transfers", "auto_create", "bool"),
    "TRANSFER_DEFAULT_SOURCE_HUB": ("transfers", "default_source_hub", str),
}


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_config_from_env(environ: Optional[Dict[str, str]] = None) -> PipelineConfig:
    """
    Load configuration from environment variables.

    Reads .env via python-dotenv when no explicit mapping is given.
    """
    if environ is None:
        load_dotenv()
        environ = dict(os.environ)

    data: Dict[str, Dict[str, Any]] = {}
    for env_key, (section, key, caster) in _ENV_KEYS.items():
        raw = environ.get(env_key)
        if raw is None or raw == "":
            continue
        try:
            value = _parse_bool(raw) if caster == "bool" else caster(raw)
        except ValueError:
            raise InvalidConfigError(env_key, raw, "cannot be parsed") from None
        data.setdefault(section, {})[key] = value

    return load_config_from_dict(data)
