# config.py
# Homeostat - Kernel configuration
#
# One small dataclass per concern. Every pure subsystem function takes an
# optional config and falls back to the module-level defaults below, so
# tests and experiments can override a single knob without touching globals.

from __future__ import annotations

from dataclasses import dataclass, field


# -----------------------------
# Brainstem
# -----------------------------

@dataclass
class MetabolicConfig:
    sleep_trigger_energy: float = 20.0     # energy < this while awake => sleep
    wake_trigger_energy: float = 95.0      # energy >= this while asleep => wake
    awake_drain_rate: float = 0.1          # per tick
    sleep_regen_rate: float = 7.0          # per tick


@dataclass
class ClockConfig:
    min_tick_ms: int = 1000
    max_tick_ms: int = 15000
    awake_tick_ms: int = 3000
    sleep_tick_ms: int = 4000
    wake_transition_tick_ms: int = 2000


@dataclass
class SocialConfig:
    baseline_cost: float = 0.05
    cost_per_speech: float = 0.15          # multiplied by consecutive count
    budget_per_speech: float = 0.2
    user_response_relief: float = 0.5      # multiplicative
    user_response_budget_boost: float = 0.3
    decay_rate_user_present: float = 0.95  # faster recovery while someone is there
    decay_rate_user_absent: float = 0.99
    budget_regen_per_tick: float = 0.01
    presence_decay_time_ms: int = 600_000  # 10 minutes to zero presence
    min_budget_to_speak: float = 0.2


# -----------------------------
# Amygdala
# -----------------------------

@dataclass
class AffectConfig:
    homeostasis_factor: float = 0.995
    fear_target: float = 0.0
    curiosity_target: float = 0.0
    frustration_target: float = 0.0
    satisfaction_target: float = 0.5
    surprise_fear: float = 0.1
    surprise_curiosity: float = 0.2
    speech_satisfaction_gain: float = 0.1
    speech_curiosity_cost: float = 0.2
    poetic_satisfaction_cost: float = 0.03
    poetic_frustration_gain: float = 0.01


@dataclass
class DampingConfig:
    ema_alpha: float = 0.4
    refractory_ms: int = 2000
    habituation_rate: float = 0.2
    max_delta: float = 0.3


@dataclass
class ChemistryConfig:
    dopamine_baseline: float = 55.0
    serotonin_baseline: float = 60.0
    norepinephrine_baseline: float = 50.0
    homeostasis_rate: float = 0.05
    above_baseline_multiplier: float = 3.0

    # boredom (talking into silence)
    boredom_min_speeches: int = 2
    boredom_penalty: float = 3.0
    boredom_penalty_low_novelty: float = 5.0      # novelty < 0.4
    boredom_penalty_very_low_novelty: float = 8.0  # novelty < 0.2
    boredom_floor: float = 40.0

    # reward prediction error
    rpe_decay_start_ticks: int = 2
    rpe_max_decay_per_tick: float = 4.0
    rpe_floor: float = 45.0

    # dialog threshold
    dialog_base_ms: int = 60_000
    dialog_min_ms: int = 30_000
    dialog_max_ms: int = 180_000

    # voice pressure bias
    voice_bias_scale: float = 0.15
    voice_bias_width: float = 30.0
    voice_habituation: float = 0.1
    voice_floor: float = 0.2

    flow_dopamine: float = 70.0


# -----------------------------
# Cortex
# -----------------------------

@dataclass
class GoalConfig:
    enabled: bool = True
    min_silence_ms: int = 60_000
    max_per_hour: int = 5
    min_energy: float = 30.0
    max_frustration: float = 0.8
    max_fear: float = 0.9
    empathy_trigger: float = 0.6
    empathy_priority: float = 0.9
    curiosity_priority: float = 0.6
    research_dopamine: float = 70.0
    refractory_silence_ms: int = 120_000
    similarity_threshold: float = 0.7
    similarity_cooldown_ms: int = 30 * 60_000
    burst_window_ms: int = 5 * 60_000
    burst_limit: int = 2
    ring_size: int = 3
    timestamp_window_ms: int = 3_600_000


@dataclass
class VolitionConfig:
    refractory_ms: int = 1800
    base_threshold: float = 0.5
    fear_threshold: float = 0.8
    fear_penalty: float = 0.2
    poetic_penalty: float = 0.1
    silence_bonus_max: float = 0.3
    silence_bonus_full_seconds: float = 60.0
    repetition_prefix: int = 20
    repetition_min_length: int = 10


@dataclass
class ExpressionConfig:
    narcissism_threshold: float = 0.15
    narcissism_max_penalty: float = 0.5
    base_threshold: float = 0.3
    shadow_threshold: float = 0.9
    saturated_dopamine: float = 95.0
    dopamine_breaker_novelty: float = 0.5
    silence_breaker_mute_novelty: float = 0.2


@dataclass
class TraitDriftConfig:
    lower_bound: float = 0.3
    upper_bound: float = 0.7
    base_rate: float = 0.005
    window_days: int = 7
    retention_days: int = 30
    max_signal_count: int = 20     # normalizes confidence together with window_days


# -----------------------------
# Orchestrator
# -----------------------------

@dataclass
class OrchestratorConfig:
    generator_timeout_s: float = 30.0
    autonomy_ops_per_minute: int = 6
    history_for_novelty: int = 5
    rem_probability: float = 0.3
    consolidation_probability: float = 0.5
    memory_recall: int = 5


@dataclass
class KernelConfig:
    metabolic: MetabolicConfig = field(default_factory=MetabolicConfig)
    clock: ClockConfig = field(default_factory=ClockConfig)
    social: SocialConfig = field(default_factory=SocialConfig)
    affect: AffectConfig = field(default_factory=AffectConfig)
    damping: DampingConfig = field(default_factory=DampingConfig)
    chemistry: ChemistryConfig = field(default_factory=ChemistryConfig)
    goals: GoalConfig = field(default_factory=GoalConfig)
    volition: VolitionConfig = field(default_factory=VolitionConfig)
    expression: ExpressionConfig = field(default_factory=ExpressionConfig)
    traits: TraitDriftConfig = field(default_factory=TraitDriftConfig)
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)


DEFAULT_CONFIG = KernelConfig()
