"""Flag rule model and the YAML rule table loader."""

from hardenkit.rules.model import (
    CandidateFlag,
    FlagCategory,
    Modes,
    Predicate,
    Rule,
    RuleContext,
    RuleGroup,
)
from hardenkit.rules.loader import RuleSet, RuleSetLoader

__all__ = [
    "CandidateFlag",
    "FlagCategory",
    "Modes",
    "Predicate",
    "Rule",
    "RuleContext",
    "RuleGroup",
    "RuleSet",
    "RuleSetLoader",
]
