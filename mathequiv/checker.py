"""
Equivalence checking: the one entry point that ties everything together.

    verdict = await check_equivalence("2x + 3x", "5x")
    verdict.equivalent   # True
    verdict.method       # Method.FAST_CANONICAL

A check goes cache lookup -> parse both -> canonicalize both -> compare
canonical strings -> (on mismatch) symbolic fallback under a time budget ->
cache store. Bad markup, a stuck fallback and fallback crashes all come back
as a Verdict; only invalid configuration raises.
"""

import asyncio
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .cache import ResultCache, fingerprint
from .canonicalizer import CanonicalizationResult, Canonicalizer
from .config import EquivalenceConfig, coerce_config
from .errors import FallbackTimeout, MathEquivError
from .fallback import SymbolicFallback, SympyFallback
from .notation import CATEGORY as NOTATION
from .parser import LatexParser, MarkupParser
from .rules import RuleLibrary
from .tree import Node

logger = logging.getLogger(__name__)

ConfigLike = Union[None, EquivalenceConfig, Mapping[str, Any]]


class Method(str, Enum):
    """How a verdict was reached."""

    FAST_CANONICAL = "fast-canonical"
    SLOW_DIFFERENCE = "slow-difference"
    SLOW_SIMPLIFY = "slow-simplify"
    PARSE_ERROR = "parse-error"
    TIMEOUT = "timeout"
    FALLBACK_ERROR = "fallback-error"
    CANONICAL_MISMATCH = "canonical-mismatch"

    def __str__(self) -> str:
        return self.value


# Verdicts that describe a run, not the pair, are never cached.
_UNCACHED = frozenset([Method.TIMEOUT, Method.FALLBACK_ERROR])

_INCONCLUSIVE = frozenset([Method.TIMEOUT, Method.FALLBACK_ERROR, Method.CANONICAL_MISMATCH])


@dataclass
class Verdict:
    equivalent: bool
    method: Method
    elapsed_ms: float = 0.0
    canonical_form_1: Optional[str] = None
    canonical_form_2: Optional[str] = None
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    cached: bool = field(default=False, compare=False)

    @property
    def is_inconclusive(self) -> bool:
        """True when ``equivalent=False`` only means "could not show it"."""
        return self.method in _INCONCLUSIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "equivalent": self.equivalent,
            "method": self.method.value,
            "elapsed_ms": self.elapsed_ms,
            "canonical_form_1": self.canonical_form_1,
            "canonical_form_2": self.canonical_form_2,
            "error": self.error,
            "details": dict(self.details),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Verdict":
        return cls(
            equivalent=bool(data["equivalent"]),
            method=Method(data["method"]),
            elapsed_ms=float(data.get("elapsed_ms", 0.0)),
            canonical_form_1=data.get("canonical_form_1"),
            canonical_form_2=data.get("canonical_form_2"),
            error=data.get("error"),
            details=dict(data.get("details") or {}),
        )


@dataclass(frozen=True)
class DiagnosticEvent:
    phase: str
    duration_ms: float
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class LineCheck:
    """Result of comparing one line of a derivation with the line before it."""

    line_number: int
    previous: str
    current: str
    verdict: Verdict


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


def _run_in_thread(loop: asyncio.AbstractEventLoop, func: Callable, *args) -> "asyncio.Future":
    """Run ``func(*args)`` on a daemon thread and return a future for the result.

    The thread is never joined: neither loop shutdown nor interpreter exit
    waits for it. A result that arrives after the future was cancelled, or
    after the loop closed, is dropped.
    """
    future = loop.create_future()

    def settle(result, error):
        if future.cancelled():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)

    def work():
        result = error = None
        try:
            result = func(*args)
        except Exception as exc:
            error = exc
        try:
            loop.call_soon_threadsafe(settle, result, error)
        except RuntimeError:
            logger.debug("Dropped a fallback result; the event loop is closed")

    threading.Thread(target=work, name="mathequiv-fallback", daemon=True).start()
    return future


class EquivalenceChecker:
    """
    Decides whether two markup expressions are mathematically equivalent.

    Args:
        parser: Markup parser (default LatexParser)
        library: Rule library for the fast path (default rule library)
        fallback: Symbolic engine for the slow path (default SympyFallback)
        cache: Verdict cache (default in-memory ResultCache)
        on_event: Called with a DiagnosticEvent after each phase
        executor: concurrent.futures executor for the fallback; None runs each
            fallback on its own daemon thread, which a timed-out check leaves
            behind without waiting for it
    """

    def __init__(self, parser: Optional[MarkupParser] = None,
                 library: Optional[RuleLibrary] = None,
                 fallback: Optional[SymbolicFallback] = None,
                 cache: Optional[ResultCache] = None,
                 on_event: Optional[Callable[[DiagnosticEvent], None]] = None,
                 executor=None):
        self.parser = parser if parser is not None else LatexParser()
        self.canonicalizer = Canonicalizer(library)
        self._notation = Canonicalizer(
            RuleLibrary([r for r in self.canonicalizer.library if r.category == NOTATION]))
        self.fallback = fallback if fallback is not None else SympyFallback()
        self.cache = cache if cache is not None else ResultCache()
        self.on_event = on_event
        self.executor = executor
        self.engine_tag = "|".join([
            self.parser.version, self.library.fingerprint(), self.fallback.name,
        ])

    @property
    def library(self) -> RuleLibrary:
        return self.canonicalizer.library

    def __repr__(self) -> str:
        return (f"EquivalenceChecker(parser={self.parser!r}, rules={len(self.library)}, "
                f"fallback={self.fallback!r})")

    # ------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------

    def _emit(self, event: DiagnosticEvent) -> None:
        if self.on_event is None:
            return
        try:
            self.on_event(event)
        except Exception:
            logger.exception("Diagnostic hook failed", extra={"phase": event.phase})

    @contextmanager
    def _phase(self, name: str):
        details: Dict[str, Any] = {}
        start = time.perf_counter()
        try:
            yield details
        finally:
            self._emit(DiagnosticEvent(name, _elapsed_ms(start), details))

    # ------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------

    def canonicalize_markup(self, markup: str, config: ConfigLike = None,
                            trace: bool = False) -> CanonicalizationResult:
        """Parse and canonicalize one expression. Raises ParseError."""
        config = coerce_config(config)
        return self._canonicalize(self.parser.parse(markup), config, trace=trace)

    async def check(self, expr1: str, expr2: str, config: ConfigLike = None) -> Verdict:
        """Check whether ``expr1`` and ``expr2`` are equivalent."""
        config = coerce_config(config)
        start = time.perf_counter()

        key = None
        if config.cache_enabled:
            key = fingerprint(expr1, expr2, config, self.engine_tag)
            with self._phase("cache-lookup") as details:
                stored = await self.cache.get(key)
                details["hit"] = stored is not None
            if stored is not None:
                verdict = Verdict.from_dict(stored)
                verdict.cached = True
                verdict.elapsed_ms = _elapsed_ms(start)
                return verdict

        verdict = await self._compute(expr1, expr2, config)
        verdict.elapsed_ms = _elapsed_ms(start)

        if key is not None and verdict.method not in _UNCACHED:
            with self._phase("cache-store") as details:
                await self.cache.put(key, verdict.to_dict(), ttl_seconds=config.cache_ttl_seconds)
                details["ttl_seconds"] = config.cache_ttl_seconds

        logger.debug(
            "Equivalence checked",
            extra={"equivalent": verdict.equivalent, "method": verdict.method.value,
                   "elapsed_ms": round(verdict.elapsed_ms, 3)},
        )
        return verdict

    async def check_lines(self, lines: Iterable[str], config: ConfigLike = None) -> List[LineCheck]:
        """Check each non-blank line against the previous non-blank line.

        Line numbers are 1-based positions in ``lines``.
        """
        config = coerce_config(config)
        results: List[LineCheck] = []
        previous: Optional[str] = None
        for number, line in enumerate(lines, 1):
            current = line.strip()
            if not current:
                continue
            if previous is not None:
                verdict = await self.check(previous, current, config)
                results.append(LineCheck(number, previous, current, verdict))
            previous = current
        return results

    # ------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------

    def _canonicalize(self, tree: Node, config: EquivalenceConfig,
                      trace: bool = False) -> CanonicalizationResult:
        return self.canonicalizer.canonicalize(
            tree, config.region,
            max_iterations=config.max_canonicalization_iterations,
            float_tolerance=config.float_tolerance,
            trace=trace,
        )

    def _parse(self, markup: str, position: int, details: Dict[str, Any]) -> Tuple[Optional[Node], Optional[Verdict]]:
        try:
            return self.parser.parse(markup), None
        except Exception as exc:
            info = exc.to_dict() if isinstance(exc, MathEquivError) else {
                "error": type(exc).__name__, "message": str(exc)}
            info["expression"] = position
            details.update(info)
            logger.info("Could not parse expression",
                        extra={"expression": position, "error": str(exc)})
            return None, Verdict(False, Method.PARSE_ERROR, error=str(exc), details=info)

    async def _compute(self, expr1: str, expr2: str, config: EquivalenceConfig) -> Verdict:
        with self._phase("parse") as details:
            tree1, failed = self._parse(expr1, 1, details)
            if failed is not None:
                return failed
            tree2, failed = self._parse(expr2, 2, details)
            if failed is not None:
                return failed

        form1 = form2 = None
        failure = None
        if not config.force_symbolic_only:
            with self._phase("canonicalize") as details:
                try:
                    result1 = self._canonicalize(tree1, config)
                    result2 = self._canonicalize(tree2, config)
                except Exception as exc:
                    failure = f"{type(exc).__name__}: {exc}"
                    details["error"] = failure
                    logger.warning("Canonicalization failed", extra={"error": failure})
                else:
                    details.update({
                        "iterations": [result1.iterations, result2.iterations],
                        "converged": [result1.converged, result2.converged],
                    })
            if failure is None:
                form1, form2 = result1.canonical_string, result2.canonical_string
                if form1 == form2:
                    return Verdict(True, Method.FAST_CANONICAL,
                                   canonical_form_1=form1, canonical_form_2=form2,
                                   details={"applied_rules_1": list(result1.applied_rules),
                                            "applied_rules_2": list(result2.applied_rules)})
            if not config.symbolic_fallback_enabled:
                return Verdict(False, Method.CANONICAL_MISMATCH, error=failure,
                               canonical_form_1=form1, canonical_form_2=form2)

        # The engine gets the parsed trees with only number notation resolved.
        left = self._read_notation(tree1, config)
        right = self._read_notation(tree2, config)
        verdict = await self._slow_path(left, right, config)
        verdict.canonical_form_1 = form1
        verdict.canonical_form_2 = form2
        if failure is not None:
            verdict.details["canonicalization_error"] = failure
        return verdict

    def _read_notation(self, tree: Node, config: EquivalenceConfig) -> Node:
        try:
            return self._notation.canonicalize(
                tree, config.region, max_iterations=config.max_canonicalization_iterations,
            ).tree
        except RecursionError:
            return tree

    async def _slow_path(self, left: Node, right: Node, config: EquivalenceConfig) -> Verdict:
        loop = asyncio.get_running_loop()
        budget_ms = config.symbolic_timeout_ms
        with self._phase("fallback") as details:
            details["budget_ms"] = budget_ms
            try:
                method, equivalent, error, extra = await asyncio.wait_for(
                    self._submit(loop, self._run_fallback, left, right, config.float_tolerance),
                    timeout=budget_ms / 1000.0,
                )
            except asyncio.TimeoutError:
                exc = FallbackTimeout(f"Symbolic fallback exceeded {budget_ms} ms",
                                      budget_ms=budget_ms)
                details["timed_out"] = True
                logger.warning("Symbolic fallback timed out", extra={"budget_ms": budget_ms})
                return Verdict(False, Method.TIMEOUT, error=str(exc), details=exc.to_dict())
            details["method"] = method.value
        return Verdict(equivalent, method, error=error, details=extra)

    def _submit(self, loop: asyncio.AbstractEventLoop, func: Callable, *args):
        if self.executor is not None:
            return loop.run_in_executor(self.executor, func, *args)
        return _run_in_thread(loop, func, *args)

    def _run_fallback(self, left: Node, right: Node,
                      tolerance: float) -> Tuple[Method, bool, Optional[str], Dict[str, Any]]:
        """Difference method, then simplification method. Runs in a worker thread."""
        difference_error = None
        try:
            if self.fallback.difference_is_zero(left, right, tolerance):
                return Method.SLOW_DIFFERENCE, True, None, {}
        except Exception as exc:
            difference_error = str(exc)
            logger.debug("Difference method failed", extra={"error": difference_error})

        try:
            simplified1 = self.fallback.simplified_form(left)
            simplified2 = self.fallback.simplified_form(right)
        except Exception as exc:
            if difference_error is None:
                # The difference was computed and is non-zero.
                return Method.SLOW_DIFFERENCE, False, None, {"simplify_error": str(exc)}
            logger.info("Symbolic fallback failed",
                        extra={"difference_error": difference_error, "simplify_error": str(exc)})
            return (Method.FALLBACK_ERROR, False, str(exc),
                    {"difference_error": difference_error, "simplify_error": str(exc)})

        extra = {"simplified_1": simplified1, "simplified_2": simplified2}
        if difference_error is not None:
            extra["difference_error"] = difference_error
        return Method.SLOW_SIMPLIFY, simplified1 == simplified2, None, extra


_default_checker: Optional[EquivalenceChecker] = None


def default_checker() -> EquivalenceChecker:
    """The shared checker used by the module-level functions."""
    global _default_checker
    if _default_checker is None:
        _default_checker = EquivalenceChecker()
    return _default_checker


async def check_equivalence(expr1: str, expr2: str, config: ConfigLike = None) -> Verdict:
    """Check two expressions with the shared default checker."""
    return await default_checker().check(expr1, expr2, config)


def canonicalize_markup(markup: str, config: ConfigLike = None,
                        trace: bool = False) -> CanonicalizationResult:
    """Parse and canonicalize one expression with the shared default checker."""
    return default_checker().canonicalize_markup(markup, config, trace=trace)
