"""The default rule library."""

from functools import lru_cache
from pathlib import Path

from .algebra import ALGEBRA_RULES
from .notation import NOTATION_RULES
from .rules import RuleLibrary, load_rules_from_file
from .trig import TRIG_RULES

IDENTITIES_FILE = Path(__file__).with_name("identities.rules")


@lru_cache(maxsize=1)
def default_library() -> RuleLibrary:
    """Notation, algebra, identity and trigonometry rules, built once."""
    identities = load_rules_from_file(IDENTITIES_FILE, category="identity")
    return RuleLibrary(NOTATION_RULES + ALGEBRA_RULES + identities + TRIG_RULES)
