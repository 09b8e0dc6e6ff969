"""
Exception hierarchy for mathequiv.

Every error carries a stable machine-readable ``code``, a human message and
an optional ``details`` dict. Data-dependent failures (bad markup, a stuck
canonicalization, a slow fallback) are normally folded into a Verdict by the
checker; configuration and rule-definition errors are raised to the caller.
"""

from typing import Any, Dict, Optional


class MathEquivError(Exception):
    """Base for all mathequiv errors."""

    code = "MATHEQUIV_ERROR"

    def __init__(self, message: str, code: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "error": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        return self.message


class ParseError(MathEquivError):
    """Raised by a markup parser when the input is not well-formed."""

    code = "PARSE_ERROR"

    def __init__(self, message: str, position: Optional[int] = None,
                 markup: Optional[str] = None):
        details: Dict[str, Any] = {}
        if position is not None:
            details["position"] = position
        if markup is not None:
            details["markup"] = markup
        super().__init__(message, details=details)
        self.position = position
        self.markup = markup

    def __str__(self) -> str:
        if self.position is None:
            return self.message
        return f"{self.message} (at position {self.position})"


class CanonicalizationNonConvergence(MathEquivError):
    """Raised in strict mode when the rewrite loop hits its iteration cap."""

    code = "NON_CONVERGENCE"

    def __init__(self, message: str, iterations: int, partial: Optional[str] = None):
        super().__init__(message, details={"iterations": iterations, "partial": partial})
        self.iterations = iterations
        self.partial = partial


class FallbackTimeout(MathEquivError):
    """The symbolic fallback did not finish inside its time budget."""

    code = "FALLBACK_TIMEOUT"

    def __init__(self, message: str, budget_ms: int):
        super().__init__(message, details={"budget_ms": budget_ms})
        self.budget_ms = budget_ms


class FallbackEngineError(MathEquivError):
    """The symbolic engine could not handle an expression."""

    code = "FALLBACK_ERROR"


class ConfigurationError(MathEquivError, ValueError):
    """Invalid configuration; always raised, never folded into a verdict."""

    code = "CONFIGURATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        details = {"field": field, "value": value} if field else None
        super().__init__(message, details=details)
        self.field = field


class RuleDefinitionError(MathEquivError, ValueError):
    """A rule file or rule library is malformed."""

    code = "RULE_DEFINITION_ERROR"
