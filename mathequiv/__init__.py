"""
mathequiv - symbolic equivalence checking for math markup

Decides whether two LaTeX expressions denote the same thing. A rule-based
canonicalizer answers most questions in well under a millisecond; when the
canonical forms differ, SymPy gets a bounded amount of time to settle it.

Quick Start:
    import asyncio
    from mathequiv import check_equivalence

    verdict = asyncio.run(check_equivalence("x^2 + 4x + 4", "(x+2)^2"))
    verdict.equivalent   # True
    verdict.method       # Method.FAST_CANONICAL

Configuration:
    check_equivalence(a, b, {"region": "EU", "symbolic_timeout_ms": 500})
    check_equivalence(a, b, EquivalenceConfig(force_symbolic_only=True))

Custom Rules (DSL):
    [*]
    @add-zero[92] "x + 0 = x": (+ ?x 0) => :x

    [EU]
    @my-rule: (pattern) => (skeleton)

    library = default_library() | RuleLibrary.from_file("my.rules")
    checker = EquivalenceChecker(library=library)

Pattern Syntax:
    ?x or ?x:expr     - match any expression, bind to x
    ?x:const          - match constant only
    ?x:var            - match variable only
    ?x:free(v)        - match expression not containing v
    :x                - substitute bound value
    (! op ...)        - compute at instantiation time
"""

__version__ = "0.1.0"

from .errors import (
    MathEquivError,
    ParseError,
    CanonicalizationNonConvergence,
    FallbackTimeout,
    FallbackEngineError,
    ConfigurationError,
    RuleDefinitionError,
)

from .config import Region, EquivalenceConfig, coerce_config

from .tree import (
    Node,
    Number,
    Symbol,
    UnaryOp,
    BinaryOp,
    Power,
    Fraction,
    Sqrt,
    FunctionCall,
    Grouped,
    Span,
    to_string,
    to_sexpr,
    from_sexpr,
)

from .parser import MarkupParser, LatexParser, parse_latex

from .rules import (
    Rule,
    RuleLibrary,
    rule,
    pattern_rule,
    parse_rule_line,
    load_rules_from_dsl,
    load_rules_from_file,
)

from .library import default_library

from .canonicalizer import (
    Canonicalizer,
    CanonicalizationResult,
    RewriteStep,
    RewriteTrace,
    canonicalize,
)

from .fallback import SymbolicFallback, SympyFallback

from .cache import CacheStore, MemoryStore, SqliteStore, ResultCache, fingerprint

from .checker import (
    Method,
    Verdict,
    DiagnosticEvent,
    LineCheck,
    EquivalenceChecker,
    check_equivalence,
    canonicalize_markup,
)

from .logger import configure_logging

__all__ = [
    "__version__",
    # Errors
    "MathEquivError",
    "ParseError",
    "CanonicalizationNonConvergence",
    "FallbackTimeout",
    "FallbackEngineError",
    "ConfigurationError",
    "RuleDefinitionError",
    # Configuration
    "Region",
    "EquivalenceConfig",
    "coerce_config",
    # Trees
    "Node",
    "Number",
    "Symbol",
    "UnaryOp",
    "BinaryOp",
    "Power",
    "Fraction",
    "Sqrt",
    "FunctionCall",
    "Grouped",
    "Span",
    "to_string",
    "to_sexpr",
    "from_sexpr",
    # Parsing
    "MarkupParser",
    "LatexParser",
    "parse_latex",
    # Rules
    "Rule",
    "RuleLibrary",
    "rule",
    "pattern_rule",
    "parse_rule_line",
    "load_rules_from_dsl",
    "load_rules_from_file",
    "default_library",
    # Canonicalization
    "Canonicalizer",
    "CanonicalizationResult",
    "RewriteStep",
    "RewriteTrace",
    "canonicalize",
    # Fallback
    "SymbolicFallback",
    "SympyFallback",
    # Cache
    "CacheStore",
    "MemoryStore",
    "SqliteStore",
    "ResultCache",
    "fingerprint",
    # Checking
    "Method",
    "Verdict",
    "DiagnosticEvent",
    "LineCheck",
    "EquivalenceChecker",
    "check_equivalence",
    "canonicalize_markup",
    # Logging
    "configure_logging",
]
