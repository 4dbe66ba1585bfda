"""House rules for Spiller: the hook engine and the default rule set."""

from .engine import Hook, PlayEffects, Rule, RuleContext, RuleEngine, text_distance
from .default_rules import default_rules

__all__ = [
    "Hook",
    "PlayEffects",
    "Rule",
    "RuleContext",
    "RuleEngine",
    "default_rules",
    "text_distance",
]
