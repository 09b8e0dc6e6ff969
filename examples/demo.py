#!/usr/bin/env python3
"""
mathequiv Feature Demonstration

This script walks through the main features of the mathequiv library.
"""

import asyncio

from mathequiv import (
    EquivalenceChecker, EquivalenceConfig, Region,
    canonicalize, parse_latex,
)


def section(title: str):
    """Print a section header."""
    print(f"\n{'='*60}")
    print(f" {title}")
    print('='*60)


def demo_canonical_forms():
    """Demonstrate canonicalization."""
    section("Canonical Forms")

    examples = [
        "2x + 3x",
        "b + a",
        "(x+2)^2",
        "\\frac{-a}{b}",
        "\\sin^2 x + \\cos^2 x",
        "\\sin(\\frac{\\pi}{6})",
    ]

    for markup in examples:
        result = canonicalize(parse_latex(markup))
        print(f"  {markup:28} => {result.canonical_string}")


def demo_tracing():
    """Demonstrate rule tracing."""
    section("Tracing")

    result = canonicalize(parse_latex("x^2 + 4x + 4"), trace=True)
    print(result.trace.format("verbose"))
    print(f"\n  {result.trace.summary()}")


def demo_regions():
    """Demonstrate region-specific notation."""
    section("Regions")

    for region in Region:
        for markup in ("1,000", "3,5", "1.000"):
            result = canonicalize(parse_latex(markup), region)
            print(f"  [{region}] {markup:6} => {result.canonical_string}")


async def demo_checks():
    """Demonstrate equivalence checks and their methods."""
    section("Equivalence Checks")

    events = []
    checker = EquivalenceChecker(on_event=events.append)

    pairs = [
        ("a + b", "b + a"),
        ("x^2 + 4x + 4", "(x+2)^2"),
        ("2(x+1)", "2x + 2"),
        ("\\sin^2 x", "1 - \\cos^2 x"),
        ("x", "y"),
        ("\\invalid{syntax}", "x"),
    ]

    for expr1, expr2 in pairs:
        verdict = await checker.check(expr1, expr2)
        status = "==" if verdict.equivalent else "!="
        print(f"  {expr1:18} {status} {expr2:18} [{verdict.method}, {verdict.elapsed_ms:.1f} ms]")

    print("\n  Checked again (from cache):")
    verdict = await checker.check("2(x+1)", "2x + 2")
    print(f"    cached={verdict.cached}, method={verdict.method}")

    print("\n  Phases seen by the diagnostic hook:")
    print(f"    {sorted({e.phase for e in events})}")


async def demo_derivation():
    """Demonstrate line-by-line checking."""
    section("Checking a Derivation")

    lines = [
        "(x+1)^2 - 1",
        "x^2 + 2x + 1 - 1",
        "x^2 + 2x",
        "x(x + 3)",
    ]
    checker = EquivalenceChecker()
    config = EquivalenceConfig(symbolic_timeout_ms=5000)
    print(f"  1: {lines[0]}")
    for check in await checker.check_lines(lines, config):
        mark = "ok" if check.verdict.equivalent else "WRONG"
        print(f"  {check.line_number}: {check.current:20} {mark} ({check.verdict.method})")


def main():
    """Run all demonstrations."""
    print("mathequiv - symbolic equivalence checking for LaTeX math")
    print("Feature Demonstration")

    demo_canonical_forms()
    demo_tracing()
    demo_regions()
    asyncio.run(demo_checks())
    asyncio.run(demo_derivation())

    print("\n" + "="*60)
    print(" Demo complete!")
    print("="*60)


if __name__ == "__main__":
    main()
