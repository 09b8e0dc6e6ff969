"""
Example of extending the default rule library.

Rules can be written in the rule DSL (pattern => skeleton, with optional
region headers) or as Python functions with the @rule decorator. Either
kind is combined with the default library using ``|``.

Usage:
    python examples/custom_rules.py

Or from the command line, with the DSL part saved to a file:
    mathequiv --rules double_angle.rules check "\\sin(2x)" "2\\sin x \\cos x"
"""

import asyncio

from mathequiv import (
    EquivalenceChecker, Grouped, Number, Power, RuleLibrary, default_library, rule,
)

DSL = '''
# Trigonometric expansions
@double-angle[20] "sin(2u) = 2 sin(u) cos(u)": (sin (* 2 ?x)) => (* 2 (sin :x) (cos :x))

# Rules under a region header only run in those regions
[EU]
@eu-unit-fraction[20] "1/(1/x) is x": (frac 1 (frac 1 ?x)) => :x
'''


def _abs_of_square(node):
    return (isinstance(node, Grouped) and node.left == "|"
            and isinstance(node.body, Power) and node.body.exponent == Number(2))


@rule("abs-of-square", 20, "|u^2| is u^2", when=_abs_of_square, category="custom")
def abs_of_square(node):
    return node.body


LIBRARY = default_library() | RuleLibrary.from_dsl(DSL) | RuleLibrary([abs_of_square])


async def main():
    checker = EquivalenceChecker(library=LIBRARY)
    pairs = [
        ("\\sin(2x)", "2\\sin x \\cos x"),
        ("|x^2|", "x^2"),
    ]
    for expr1, expr2 in pairs:
        verdict = await checker.check(expr1, expr2)
        print(f"{expr1} vs {expr2}: {verdict.equivalent} ({verdict.method})")

    print()
    print("\n".join(line for line in LIBRARY.list_rules() if "[20]" in line))


if __name__ == "__main__":
    asyncio.run(main())
