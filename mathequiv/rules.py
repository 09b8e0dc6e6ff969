"""
Rules, rule libraries and the rule DSL.

A Rule is a named, prioritized pair of pure functions over trees: ``match``
is a cheap structural test and ``transform`` builds the rewritten tree. A
RuleLibrary holds rules sorted by priority (highest first, stable for ties)
and precomputes the rules active in each region.

Rules can also be written declaratively in ``.rules`` files:

    # comment
    [US, UK]                            region header; [*] means every region
    @name[priority] "description": pattern => skeleton
    @name[priority]: pattern => skeleton
    @name: pattern => skeleton
    :include other.rules

    Example:
    [*]
    @add-zero[92] "Adding zero has no effect": (+ ?x 0) => :x
    @fold-mul[50]: (* ?a:const ?b:const) => (! * :a :b)

Patterns and skeletons use the s-expression view described in
``mathequiv.tree`` and the pattern syntax of ``mathequiv.patterns``.
"""

import hashlib
import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import (Callable, Dict, FrozenSet, Iterable, Iterator, List,
                    Optional, Set, Tuple, Union)

from .config import ALL_REGIONS, Region
from .errors import ConfigurationError, RuleDefinitionError
from .patterns import (ARITHMETIC_PRELUDE, FoldFuncsType, format_sexpr,
                       instantiate, match, parse_sexpr)
from .tree import Node, SexprType, from_sexpr, sexpr_head, to_sexpr


@dataclass(frozen=True)
class Rule:
    """A named rewrite with a priority and the regions it is active in."""

    name: str
    description: str
    priority: int
    match: Callable[[Node], bool]
    transform: Callable[[Node], Node]
    regions: FrozenSet[Region] = ALL_REGIONS
    category: str = "custom"
    source: Optional[Tuple[SexprType, SexprType]] = field(default=None, compare=False, repr=False)

    def applies_in(self, region: Region) -> bool:
        return region in self.regions

    def apply(self, node: Node) -> Optional[Node]:
        """Rewrite ``node``, or return None if the rule does not change it."""
        if not self.match(node):
            return None
        result = self.transform(node)
        return None if result == node else result

    def __repr__(self) -> str:
        base = f"@{self.name}[{self.priority}]"
        if self.description:
            base += f" \"{self.description}\""
        return base


def rule(name: str, priority: int, description: str = "",
         when: Optional[Callable[[Node], bool]] = None,
         regions: Iterable[Region] = ALL_REGIONS,
         category: str = "custom") -> Callable[[Callable[[Node], Node]], Rule]:
    """Decorator turning a transform function into a Rule.

    Example:
        @rule("drop-unary-plus", 95, "Unary plus has no effect",
              when=lambda n: isinstance(n, UnaryOp) and n.op == "+")
        def drop_unary_plus(node):
            return node.operand
    """
    def decorator(transform: Callable[[Node], Node]) -> Rule:
        return Rule(
            name=name,
            description=description or (transform.__doc__ or "").strip(),
            priority=priority,
            match=when or (lambda node: True),
            transform=transform,
            regions=frozenset(regions),
            category=category,
        )
    return decorator


# ============================================================
# Declarative pattern rules
# ============================================================

def _pattern_vars(pattern: SexprType, found: Optional[Set[str]] = None) -> Set[str]:
    found = set() if found is None else found
    if isinstance(pattern, list):
        if pattern and pattern[0] in ("?", "?c", "?v", "?free") and len(pattern) >= 2:
            found.add(pattern[1])
        else:
            for item in pattern:
                _pattern_vars(item, found)
    return found


def _skeleton_vars(skeleton: SexprType, found: Optional[Set[str]] = None) -> Set[str]:
    found = set() if found is None else found
    if isinstance(skeleton, list):
        if len(skeleton) == 2 and skeleton[0] == ":":
            found.add(skeleton[1])
        else:
            for item in skeleton:
                _skeleton_vars(item, found)
    return found


def pattern_rule(name: str, pattern: Union[str, SexprType], skeleton: Union[str, SexprType],
                 priority: int = 0, description: str = "",
                 regions: Iterable[Region] = ALL_REGIONS, category: str = "custom",
                 fold_funcs: Optional[FoldFuncsType] = ARITHMETIC_PRELUDE) -> Rule:
    """Build a Rule from a ``pattern => skeleton`` pair.

    Example:
        pattern_rule("add-zero", "(+ ?x 0)", ":x", priority=92)
    """
    if isinstance(pattern, str):
        pattern = parse_sexpr(pattern)
    if isinstance(skeleton, str):
        skeleton = parse_sexpr(skeleton)
    unbound = _skeleton_vars(skeleton) - _pattern_vars(pattern)
    if unbound:
        raise RuleDefinitionError(
            f"Rule {name!r} uses unbound variable(s): {', '.join(sorted(unbound))}",
            details={"rule": name},
        )

    head = None
    if isinstance(pattern, list) and pattern and isinstance(pattern[0], str) \
            and pattern[0] not in ("?", "?c", "?v", "?free"):
        head = pattern[0]

    def matches(node: Node) -> bool:
        if head is not None and sexpr_head(node) != head:
            return False
        return match(pattern, to_sexpr(node)) is not None

    def transform(node: Node) -> Node:
        bindings = match(pattern, to_sexpr(node))
        if bindings is None:
            return node
        try:
            return from_sexpr(instantiate(skeleton, bindings, fold_funcs))
        except ValueError as exc:
            raise RuleDefinitionError(f"Rule {name!r} built an invalid tree: {exc}",
                                      details={"rule": name}) from exc

    return Rule(name=name, description=description, priority=priority,
                match=matches, transform=transform,
                regions=frozenset(regions), category=category,
                source=(pattern, skeleton))


# ============================================================
# DSL loading
# ============================================================

_RULE_HEADER_FORMATS = [
    re.compile(r'@([\w-]+)\[(-?\d+)\]\s+"([^"]*)":\s*(.+)'),
    re.compile(r'@([\w-]+)\[(-?\d+)\]():\s*(.+)'),
    re.compile(r'@([\w-]+)()\s+"([^"]*)":\s*(.+)'),
    re.compile(r'@([\w-]+)()():\s*(.+)'),
]


def parse_regions(header: str) -> FrozenSet[Region]:
    """Parse the inside of a ``[US, UK]`` or ``[*]`` header."""
    names = [part.strip() for part in header.split(",") if part.strip()]
    if not names:
        raise RuleDefinitionError("Empty region header")
    if names == ["*"]:
        return ALL_REGIONS
    try:
        return frozenset(Region.parse(name) for name in names)
    except ConfigurationError as exc:
        raise RuleDefinitionError(str(exc)) from exc


def parse_rule_line(line: str, regions: FrozenSet[Region] = ALL_REGIONS,
                    category: str = "custom", line_number: int = 0) -> Optional[Rule]:
    """
    Parse a single rule line.

    Formats:
        @name[priority] "description": pattern => skeleton
        @name[priority]: pattern => skeleton
        @name "description": pattern => skeleton
        @name: pattern => skeleton

    Returns: a Rule, or None for blank and comment lines

    Raises:
        RuleDefinitionError: if the line is not a well-formed rule
    """
    line = line.strip()
    if not line or line.startswith("#"):
        return None

    for fmt in _RULE_HEADER_FORMATS:
        m = fmt.match(line)
        if m:
            name, priority, description, body = m.groups()
            break
    else:
        raise RuleDefinitionError(f"Line {line_number}: rules must start with @name: {line!r}",
                                  details={"line": line_number})

    if "=>" not in body:
        raise RuleDefinitionError(f"Line {line_number}: missing '=>' in rule {name!r}",
                                  details={"line": line_number, "rule": name})
    pattern_text, skeleton_text = (part.strip() for part in body.split("=>", 1))
    try:
        pattern = parse_sexpr(pattern_text)
        skeleton = parse_sexpr(skeleton_text)
    except ValueError as exc:
        raise RuleDefinitionError(f"Line {line_number}: {exc}",
                                  details={"line": line_number, "rule": name}) from exc

    return pattern_rule(name, pattern, skeleton, priority=int(priority or 0),
                        description=description or "", regions=regions, category=category)


def load_rules_from_dsl(text: str, base_path: Optional[Path] = None,
                        category: str = "custom",
                        _included_files: Optional[set] = None) -> List[Rule]:
    """
    Load rules from DSL text.

    Supports region headers (``[EU]``, ``[US, UK]``, ``[*]``) and
    ``:include path`` directives resolved relative to ``base_path``.
    """
    rules = []
    regions = ALL_REGIONS
    if _included_files is None:
        _included_files = set()

    for number, line in enumerate(text.split("\n"), 1):
        stripped = line.strip()

        if stripped.startswith("[") and stripped.endswith("]"):
            regions = parse_regions(stripped[1:-1])
            continue

        if stripped.startswith(":include "):
            include_path = Path(stripped[9:].strip())
            if base_path is not None:
                include_path = base_path / include_path
            abs_path = include_path.resolve()
            if abs_path in _included_files:
                raise RuleDefinitionError(f"Circular include detected: {include_path}")
            if not include_path.exists():
                raise RuleDefinitionError(f"Include file not found: {include_path}")
            _included_files.add(abs_path)
            rules.extend(load_rules_from_file(include_path, category=category,
                                              _included_files=_included_files))
            continue

        parsed = parse_rule_line(line, regions=regions, category=category, line_number=number)
        if parsed is not None:
            rules.append(parsed)
    return rules


def load_rules_from_file(path: Union[str, Path], category: str = "custom",
                         _included_files: Optional[set] = None) -> List[Rule]:
    """Load rules from a .rules file."""
    path = Path(path)
    return load_rules_from_dsl(path.read_text(encoding="utf-8"), base_path=path.parent,
                               category=category, _included_files=_included_files)


# ============================================================
# Rule library
# ============================================================

class RuleLibrary:
    """
    Immutable, priority-ordered collection of rules.

    Rules are sorted once, by priority descending; rules with equal priority
    keep their insertion order. Names must be unique.

    Example:
        library = RuleLibrary(ALGEBRA_RULES) | RuleLibrary.from_dsl(extra_text)
        for rule in library.for_region(Region.EU):
            ...
    """

    def __init__(self, rules: Iterable[Rule] = ()):
        indexed = list(enumerate(rules))
        seen: Dict[str, Rule] = {}
        for _, r in indexed:
            if r.name in seen:
                raise RuleDefinitionError(f"Duplicate rule name: {r.name!r}",
                                          details={"rule": r.name})
            seen[r.name] = r
        indexed.sort(key=lambda item: (-item[1].priority, item[0]))
        self._rules: Tuple[Rule, ...] = tuple(r for _, r in indexed)
        self._by_name = seen
        self._by_region = {
            region: tuple(r for r in self._rules if region in r.regions)
            for region in Region
        }

    def for_region(self, region: Union[Region, str]) -> Tuple[Rule, ...]:
        """Rules active in ``region``, in firing order."""
        return self._by_region[Region.parse(region)]

    def get(self, name: str) -> Optional[Rule]:
        return self._by_name.get(name)

    def __getitem__(self, name: str) -> Rule:
        if name not in self._by_name:
            raise KeyError(f"No rule named '{name}'")
        return self._by_name[name]

    def __contains__(self, name: str) -> bool:
        return name in self._by_name

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __or__(self, other: "RuleLibrary") -> "RuleLibrary":
        """Union of two libraries: library1 | library2."""
        return RuleLibrary(list(self._rules) + list(other))

    def __repr__(self) -> str:
        return f"RuleLibrary({len(self._rules)} rules)"

    def categories(self) -> List[str]:
        return sorted({r.category for r in self._rules})

    def list_rules(self, region: Optional[Union[Region, str]] = None) -> List[str]:
        """One line per rule, in firing order, optionally for one region."""
        rules = self._rules if region is None else self.for_region(region)
        lines = []
        for r in rules:
            line = repr(r)
            if r.regions != ALL_REGIONS:
                line += " [" + ", ".join(sorted(reg.value for reg in r.regions)) + "]"
            if r.source is not None:
                line += f": {format_sexpr(r.source[0])} => {format_sexpr(r.source[1])}"
            lines.append(line)
        return lines

    def fingerprint(self) -> str:
        """Short digest of the rule names, priorities and regions."""
        payload = [[r.name, r.priority, sorted(reg.value for reg in r.regions)]
                   for r in self._rules]
        digest = hashlib.sha256(json.dumps(payload).encode("utf-8")).hexdigest()
        return digest[:16]

    @classmethod
    def from_dsl(cls, text: str, category: str = "custom") -> "RuleLibrary":
        return cls(load_rules_from_dsl(text, category=category))

    @classmethod
    def from_file(cls, path: Union[str, Path], category: str = "custom") -> "RuleLibrary":
        return cls(load_rules_from_file(path, category=category))
