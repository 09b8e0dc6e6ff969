"""
Canonicalization: rewrite a tree to a fixpoint under a rule library.

One pass walks the tree bottom-up. At every node the children are rewritten
first, then the region's rules are tried in priority order and the first one
that changes the node fires (at most one rule per node per pass). Passes
repeat until one leaves the tree unchanged, which is an O(1) digest
comparison, or until the iteration cap is reached.

Example:
    from mathequiv import canonicalize, parse_latex

    result = canonicalize(parse_latex("3x + 2x"), "US")
    result.canonical_string   # "5 \\cdot x"
    result.converged          # True

Tracing:
    canonicalize(tree, trace=True).trace shows which rules fired, in order.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

from .config import Region
from .errors import CanonicalizationNonConvergence, ConfigurationError
from .library import default_library
from .rules import Rule, RuleLibrary
from .tree import Node, to_string

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 100


class RewriteStep:
    """A single rule application in a trace."""

    def __init__(self, rule: Rule, before: Node, after: Node, iteration: int):
        self.rule = rule
        self.before = before
        self.after = after
        self.iteration = iteration

    def __repr__(self) -> str:
        return f"{self.rule.name}: {to_string(self.before)} -> {to_string(self.after)}"

    def to_dict(self) -> Dict:
        return {
            "rule_name": self.rule.name,
            "description": self.rule.description,
            "iteration": self.iteration,
            "before": to_string(self.before),
            "after": to_string(self.after),
        }


class RewriteTrace:
    """
    A trace of all rewriting steps applied.

    Provides multiple formatting options:
        - format("verbose"): one numbered line per step (default)
        - format("compact"): single line showing the rule chain
        - format("rules"): just the rule names applied
        - format("chain"): the whole tree after each step
        - to_dict(): JSON-serializable dictionary
    """

    def __init__(self, initial: Optional[Node] = None):
        self.steps: List[RewriteStep] = []
        self.initial = initial
        self.final: Optional[Node] = None
        self._snapshots: List[Node] = []

    def add_step(self, step: RewriteStep):
        self.steps.append(step)

    def add_snapshot(self, tree: Node):
        """Record the whole tree at the end of a pass that changed it."""
        self._snapshots.append(tree)

    def format(self, style: str = "verbose") -> str:
        if style == "compact":
            return f"{self._text(self.initial)} --[{', '.join(self.rules_applied())}]--> " \
                   f"{self._text(self.final)}"
        if style == "rules":
            rules = self.rules_applied()
            return " -> ".join(rules) if rules else "(no rules applied)"
        if style == "chain":
            parts = [self._text(self.initial)]
            for iteration, snapshot in enumerate(self._snapshots, 1):
                names = [s.rule.name for s in self.steps if s.iteration == iteration]
                parts.append(f"  --({', '.join(names)})-->")
                parts.append(self._text(snapshot))
            return "\n".join(parts)
        return repr(self)

    @staticmethod
    def _text(node: Optional[Node]) -> str:
        return "" if node is None else to_string(node)

    def __repr__(self) -> str:
        lines = [f"Initial: {self._text(self.initial)}"]
        for i, step in enumerate(self.steps, 1):
            lines.append(f"  {i}. {step}")
        lines.append(f"Final: {self._text(self.final)}")
        return "\n".join(lines)

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self):
        return iter(self.steps)

    def __bool__(self) -> bool:
        return len(self.steps) > 0

    def to_dict(self) -> Dict:
        return {
            "initial": self._text(self.initial),
            "final": self._text(self.final),
            "steps": [step.to_dict() for step in self.steps],
            "step_count": len(self.steps),
        }

    def rule_counts(self) -> Dict[str, int]:
        """Count how many times each rule was applied."""
        counts: Dict[str, int] = {}
        for step in self.steps:
            counts[step.rule.name] = counts.get(step.rule.name, 0) + 1
        return counts

    def rules_applied(self) -> List[str]:
        return [s.rule.name for s in self.steps]

    def summary(self) -> str:
        if not self.steps:
            return "No rewriting performed"
        counts = self.rule_counts()
        most_used = max(counts.items(), key=lambda x: x[1])
        return (f"{len(self.steps)} steps using {len(counts)} unique rules. "
                f"Most used: {most_used[0]} ({most_used[1]}x)")


@dataclass(frozen=True)
class CanonicalizationResult:
    tree: Node
    canonical_string: str
    iterations: int
    converged: bool
    applied_rules: Tuple[str, ...] = ()
    trace: Optional[RewriteTrace] = field(default=None, compare=False, repr=False)


class Canonicalizer:
    """Drives trees to canonical form with a fixed rule library."""

    def __init__(self, library: Optional[RuleLibrary] = None):
        self.library = library if library is not None else default_library()

    def canonicalize(self, tree: Node, region: Union[Region, str] = Region.US, *,
                     max_iterations: int = DEFAULT_MAX_ITERATIONS,
                     float_tolerance: float = 1e-6,
                     trace: bool = False,
                     strict: bool = False) -> CanonicalizationResult:
        """
        Rewrite ``tree`` until no rule applies.

        Args:
            tree: Parsed expression
            region: Notation region selecting the active rules
            max_iterations: Cap on full passes
            float_tolerance: Used when printing floats in the canonical string
            trace: Record every rule application
            strict: Raise CanonicalizationNonConvergence instead of returning
                a non-converged result

        Returns:
            CanonicalizationResult; ``converged`` is False when the cap was hit.
        """
        region = Region.parse(region)
        if isinstance(max_iterations, bool) or not isinstance(max_iterations, int) \
                or max_iterations < 1:
            raise ConfigurationError("max_iterations must be a positive integer",
                                     field="max_iterations", value=max_iterations)

        rules = self.library.for_region(region)
        applied: List[str] = []
        trace_obj = RewriteTrace(initial=tree) if trace else None

        current = tree
        converged = False
        iterations = 0
        while iterations < max_iterations:
            iterations += 1
            steps_before = len(applied)
            rewritten = self._rewrite(current, rules, applied, trace_obj, iterations)
            if rewritten == current:
                converged = True
                break
            current = rewritten
            if trace_obj is not None and len(applied) > steps_before:
                trace_obj.add_snapshot(current)

        if trace_obj is not None:
            trace_obj.final = current
        canonical = to_string(current, float_tolerance)

        if not converged:
            logger.warning(
                "Canonicalization did not converge",
                extra={"iterations": iterations, "region": region.value,
                       "partial": canonical},
            )
            if strict:
                raise CanonicalizationNonConvergence(
                    f"No fixpoint after {iterations} iterations",
                    iterations=iterations, partial=canonical,
                )

        return CanonicalizationResult(
            tree=current,
            canonical_string=canonical,
            iterations=iterations,
            converged=converged,
            applied_rules=tuple(applied),
            trace=trace_obj,
        )

    def _rewrite(self, node: Node, rules: Tuple[Rule, ...], applied: List[str],
                 trace: Optional[RewriteTrace], iteration: int) -> Node:
        """Single bottom-up pass: rewrite children, then fire one rule here."""
        children = node.children()
        if children:
            new_children = [self._rewrite(c, rules, applied, trace, iteration) for c in children]
            if any(new != old for new, old in zip(new_children, children)):
                node = node.with_children(new_children)

        for r in rules:
            result = r.apply(node)
            if result is not None:
                applied.append(r.name)
                if trace is not None:
                    trace.add_step(RewriteStep(r, node, result, iteration))
                return result
        return node


_default_canonicalizer: Optional[Canonicalizer] = None


def canonicalize(tree: Node, region: Union[Region, str] = Region.US, *,
                 max_iterations: int = DEFAULT_MAX_ITERATIONS,
                 float_tolerance: float = 1e-6,
                 trace: bool = False,
                 strict: bool = False) -> CanonicalizationResult:
    """Canonicalize with the default rule library."""
    global _default_canonicalizer
    if _default_canonicalizer is None:
        _default_canonicalizer = Canonicalizer()
    return _default_canonicalizer.canonicalize(
        tree, region, max_iterations=max_iterations, float_tolerance=float_tolerance,
        trace=trace, strict=strict,
    )
