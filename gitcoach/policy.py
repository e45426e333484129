"""Policy matrix adapting warnings and prompts to experience."""
from dataclasses import dataclass
from typing import Iterable
from enum import Enum

from .validation import RiskWarning, Severity


class ExperienceTier(str, Enum):
    BEGINNER     = "beginner"
    INTERMEDIATE = "intermediate"
    EXPERT       = "expert"

    @classmethod
    def parse(cls, raw: "str | ExperienceTier") -> "ExperienceTier":
        if isinstance(raw, cls): return raw
        value = str(raw).strip().lower()
        for tier in cls:
            if tier.value == value: return tier
        choices = ", ".join(t.value for t in cls)
        raise ValueError(f"unknown experience level {raw!r} "
                         f"(expected one of: {choices})")


@dataclass(frozen=True)
class TierRule:
    """What one experience tier sees and confirms."""
    min_severity: Severity
    always_confirm: bool
    explain: bool


TIER_POLICY: dict[ExperienceTier, TierRule] = {
    ExperienceTier.BEGINNER: TierRule(
        min_severity=Severity.INFO,
        always_confirm=True,
        explain=True,
    ),
    ExperienceTier.INTERMEDIATE: TierRule(
        min_severity=Severity.WARNING,
        always_confirm=True,
        explain=False,
    ),
    ExperienceTier.EXPERT: TierRule(
        min_severity=Severity.CRITICAL,
        always_confirm=False,
        explain=False,
    ),
}


def rule_for(tier: ExperienceTier | str) -> TierRule:
    return TIER_POLICY[ExperienceTier.parse(tier)]


def should_confirm(tier: ExperienceTier | str, is_destructive: bool,
                   confirm_destructive: bool = True) -> bool:
    """
    Beginners and intermediates confirm every operation.
    Experts confirm only destructive ones, and only while
    the confirm-destructive preference is on.
    """
    if rule_for(tier).always_confirm: return True
    return is_destructive and confirm_destructive


def should_show_warning(tier: ExperienceTier | str,
                        severity: Severity) -> bool:
    if severity is Severity.CRITICAL: return True
    return severity >= rule_for(tier).min_severity


def should_show_explanation(tier: ExperienceTier | str) -> bool:
    return rule_for(tier).explain


@dataclass(frozen=True)
class AdaptivePolicy:
    tier: ExperienceTier = ExperienceTier.BEGINNER
    confirm_destructive: bool = True

    def should_confirm(self, is_destructive: bool) -> bool:
        return should_confirm(self.tier, is_destructive,
               self.confirm_destructive)

    def should_show_warning(self, severity: Severity) -> bool:
        return should_show_warning(self.tier, severity)

    def should_show_explanation(self) -> bool:
        return should_show_explanation(self.tier)

    def visible(self, warnings: Iterable[RiskWarning]
               ) -> list[RiskWarning]:
        """Warnings this tier gets to see, order preserved."""
        return [w for w in warnings
               if self.should_show_warning(w.severity)]
