#!/usr/bin/env python3
"""
mathequiv Command-Line Interface

Usage:
    mathequiv check "2x + 3x" "5x"      # Compare two expressions
    mathequiv canon "(x+2)^2"           # Show the canonical form
    mathequiv lines derivation.txt      # Check each line against the previous
    mathequiv rules --region EU         # List active rules
    mathequiv repl                      # Interactive session
    echo "x+x" | mathequiv              # Same as: mathequiv lines -

Options shared by every command:
    --region US|UK|EU    Number notation region
    --symbolic-only      Skip the rule-based fast path
    --timeout-ms N       Symbolic fallback budget
    --tolerance X        Float tolerance
    --no-cache           Do not read or write the verdict cache
    --no-fallback        Never call the symbolic engine
    --json               Machine-readable output
    --trace              Show rule applications
    --rules FILE         Extra rules (DSL), may be repeated
    --log-level LEVEL    DEBUG, INFO, WARNING, ...

Unset options fall back to the MATHEQUIV_* environment variables.

REPL input:
    a ; b              Check a against b
    a                  Canonicalize a
    :help              Show help
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import __version__
from .checker import EquivalenceChecker, Verdict
from .config import EquivalenceConfig, Region
from .errors import MathEquivError
from .library import default_library
from .logger import configure_logging
from .rules import RuleLibrary

try:
    import readline
    HAS_READLINE = True
except ImportError:
    HAS_READLINE = False

EXIT_OK = 0
EXIT_NOT_EQUIVALENT = 1
EXIT_ERROR = 2


def build_config(args: argparse.Namespace) -> EquivalenceConfig:
    """Environment defaults overridden by any options given on the command line."""
    config = EquivalenceConfig.from_env()
    changes: Dict[str, Any] = {}
    if args.region is not None:
        changes["region"] = args.region
    if args.symbolic_only:
        changes["force_symbolic_only"] = True
    if args.timeout_ms is not None:
        changes["symbolic_timeout_ms"] = args.timeout_ms
    if args.tolerance is not None:
        changes["float_tolerance"] = args.tolerance
    if args.no_cache:
        changes["cache_enabled"] = False
    if args.no_fallback:
        changes["symbolic_fallback_enabled"] = False
    return config.replace(**changes).validate()


def build_library(rule_files: List[str]) -> RuleLibrary:
    library = default_library()
    for path in rule_files:
        library = library | RuleLibrary.from_file(path)
    return library


def format_verdict(verdict: Verdict) -> str:
    status = "equivalent" if verdict.equivalent else "not equivalent"
    lines = [f"{status} ({verdict.method}, {verdict.elapsed_ms:.1f} ms"
             f"{', cached' if verdict.cached else ''})"]
    if verdict.canonical_form_1 is not None:
        lines.append(f"  1: {verdict.canonical_form_1}")
        lines.append(f"  2: {verdict.canonical_form_2}")
    if verdict.error:
        lines.append(f"  error: {verdict.error}")
    return "\n".join(lines)


def _verdict_json(verdict: Verdict) -> Dict[str, Any]:
    data = verdict.to_dict()
    data["cached"] = verdict.cached
    return data


class MathEquivCompleter:
    """Tab completer for the REPL."""

    COMMANDS = [
        ":help", ":quit", ":exit", ":q",
        ":region", ":trace", ":rules", ":canon", ":symbolic",
    ]

    def __init__(self):
        self.matches: List[str] = []

    def complete(self, text: str, state: int) -> Optional[str]:
        if state == 0:
            line = readline.get_line_buffer() if HAS_READLINE else ""
            self.matches = self._get_matches(text, line)
        try:
            return self.matches[state]
        except IndexError:
            return None

    def _get_matches(self, text: str, line: str) -> List[str]:
        line = line.lstrip()
        if line.startswith(":region "):
            return [r.value for r in Region if r.value.startswith(text.upper())]
        if line.startswith(":trace ") or line.startswith(":symbolic "):
            return [t for t in ("on", "off") if t.startswith(text)]
        if text.startswith(":") or (line.startswith(":") and " " not in line):
            return [c for c in self.COMMANDS if c.startswith(text)]
        return []


class MathEquivREPL:
    """Interactive REPL: check pairs and inspect canonical forms."""

    def __init__(self, checker: EquivalenceChecker, config: EquivalenceConfig,
                 trace: bool = False):
        self.checker = checker
        self.config = config
        self.trace = trace
        self.running = True
        self.loop = asyncio.new_event_loop()

        if HAS_READLINE:
            self.history_file = Path.home() / ".mathequiv_history"
            try:
                readline.read_history_file(self.history_file)
            except FileNotFoundError:
                pass
            readline.set_history_length(1000)
            self.completer = MathEquivCompleter()
            readline.set_completer(self.completer.complete)
            readline.parse_and_bind("tab: complete")
            readline.set_completer_delims(" \t\n")

    def close(self):
        self.loop.close()

    def save_history(self):
        if HAS_READLINE:
            try:
                readline.write_history_file(self.history_file)
            except OSError as e:
                print(f"Could not save history: {e}", file=sys.stderr)

    @staticmethod
    def _toggle(arg: str, current: bool) -> bool:
        if arg.lower() in ("on", "true", "1"):
            return True
        if arg.lower() in ("off", "false", "0"):
            return False
        return not current

    def handle_command(self, line: str) -> Optional[str]:
        """
        Handle a REPL command (starts with :).

        Returns a message to print, or None.
        """
        parts = line[1:].split(None, 1)
        if not parts:
            return "Unknown command. Type :help for help."

        cmd = parts[0].lower()
        arg = parts[1].strip() if len(parts) > 1 else ""

        if cmd == "help":
            return self.help_text()

        elif cmd in ("quit", "exit", "q"):
            self.running = False
            return None

        elif cmd == "region":
            if not arg:
                return f"Region: {self.config.region}"
            try:
                self.config = self.config.replace(region=arg)
            except MathEquivError as e:
                return f"Error: {e}"
            return f"Region set to: {self.config.region}"

        elif cmd == "trace":
            self.trace = self._toggle(arg, self.trace)
            return f"Tracing {'enabled' if self.trace else 'disabled'}"

        elif cmd == "symbolic":
            enabled = self._toggle(arg, self.config.force_symbolic_only)
            self.config = self.config.replace(force_symbolic_only=enabled,
                                              symbolic_fallback_enabled=True)
            return f"Symbolic-only {'enabled' if enabled else 'disabled'}"

        elif cmd == "rules":
            return "\n".join(self.checker.library.list_rules(self.config.region))

        elif cmd == "canon":
            if not arg:
                return "Usage: :canon EXPRESSION"
            return self.canonicalize(arg)

        else:
            return f"Unknown command: {cmd}. Type :help for help."

    def help_text(self) -> str:
        return """mathequiv REPL Commands:
  :help              Show this help
  :region US|UK|EU   Show or set the notation region
  :trace on|off      Toggle rule tracing
  :symbolic on|off   Toggle symbolic-only checking
  :rules             List rules active in the current region
  :canon EXPR        Show the canonical form of EXPR
  :quit              Exit

Input:
  a ; b              Check whether a and b are equivalent
  a                  Show the canonical form of a
"""

    def canonicalize(self, markup: str) -> str:
        try:
            result = self.checker.canonicalize_markup(markup, self.config, trace=self.trace)
        except MathEquivError as e:
            return f"Error: {e}"
        output = result.canonical_string
        if not result.converged:
            output += f"  (not converged after {result.iterations} iterations)"
        if self.trace and result.trace:
            output += "\n" + result.trace.format("rules")
        return output

    def process_line(self, line: str) -> Optional[str]:
        line = line.strip()
        if not line or line.startswith("#"):
            return None
        if line.startswith(":"):
            return self.handle_command(line)
        if ";" in line:
            expr1, expr2 = line.split(";", 1)
            verdict = self.loop.run_until_complete(
                self.checker.check(expr1.strip(), expr2.strip(), self.config))
            return format_verdict(verdict)
        return self.canonicalize(line)

    def run(self):
        print(f"mathequiv {__version__} - symbolic equivalence checking")
        print("Type :help for help, :quit to exit")
        print()

        while self.running:
            try:
                line = input(f"mathequiv[{self.config.region}]> ")
                result = self.process_line(line)
                if result:
                    print(result)
            except EOFError:
                print()
                break
            except KeyboardInterrupt:
                print()
                continue

        self.save_history()
        self.close()


# ============================================================
# Commands
# ============================================================

def cmd_check(args, checker: EquivalenceChecker, config: EquivalenceConfig) -> int:
    verdict = asyncio.run(checker.check(args.expr1, args.expr2, config))
    if args.json:
        print(json.dumps(_verdict_json(verdict), indent=2))
    else:
        print(format_verdict(verdict))
    return EXIT_OK if verdict.equivalent else EXIT_NOT_EQUIVALENT


def cmd_canon(args, checker: EquivalenceChecker, config: EquivalenceConfig) -> int:
    result = checker.canonicalize_markup(args.expr, config, trace=args.trace)
    if args.json:
        data = {
            "canonical": result.canonical_string,
            "iterations": result.iterations,
            "converged": result.converged,
            "applied_rules": list(result.applied_rules),
        }
        if result.trace is not None:
            data["trace"] = result.trace.to_dict()
        print(json.dumps(data, indent=2))
    else:
        print(result.canonical_string)
        if result.trace is not None:
            print(result.trace.format("verbose"))
    return EXIT_OK


def cmd_lines(args, checker: EquivalenceChecker, config: EquivalenceConfig) -> int:
    if args.file == "-":
        lines = sys.stdin.read().splitlines()
    else:
        lines = Path(args.file).read_text().splitlines()
    # Comments are blanked, not dropped, so line numbers match the file.
    lines = ["" if line.lstrip().startswith("#") else line for line in lines]

    checks = asyncio.run(checker.check_lines(lines, config))
    if args.json:
        print(json.dumps([
            {"line": c.line_number, "previous": c.previous, "current": c.current,
             "verdict": _verdict_json(c.verdict)}
            for c in checks
        ], indent=2))
    else:
        for c in checks:
            mark = "ok  " if c.verdict.equivalent else "FAIL"
            print(f"{mark} line {c.line_number}: {c.current}  ({c.verdict.method})")
    return EXIT_OK if all(c.verdict.equivalent for c in checks) else EXIT_NOT_EQUIVALENT


def cmd_rules(args, checker: EquivalenceChecker, config: EquivalenceConfig) -> int:
    region = config.region if args.region is not None else None
    if args.json:
        print(json.dumps([
            {"name": r.name, "priority": r.priority, "category": r.category,
             "description": r.description,
             "regions": sorted(reg.value for reg in r.regions)}
            for r in (checker.library.for_region(region) if region else checker.library)
        ], indent=2))
    else:
        print("\n".join(checker.library.list_rules(region)))
    return EXIT_OK


def cmd_repl(args, checker: EquivalenceChecker, config: EquivalenceConfig) -> int:
    MathEquivREPL(checker, config, trace=args.trace).run()
    return EXIT_OK


COMMANDS = {
    "check": cmd_check,
    "canon": cmd_canon,
    "lines": cmd_lines,
    "rules": cmd_rules,
    "repl": cmd_repl,
}

OPTION_DEFAULTS = {
    "region": None,
    "symbolic_only": False,
    "timeout_ms": None,
    "tolerance": None,
    "no_cache": False,
    "no_fallback": False,
    "json": False,
    "trace": False,
    "rules": list,
    "log_level": None,
}


def build_parser() -> argparse.ArgumentParser:
    # SUPPRESS keeps a subcommand from resetting options given before it.
    common = argparse.ArgumentParser(add_help=False, argument_default=argparse.SUPPRESS)
    common.add_argument("--region", type=str.upper, choices=[r.value for r in Region],
                        help="Number notation region")
    common.add_argument("--symbolic-only", action="store_true",
                        help="Skip canonicalization and go straight to the symbolic engine")
    common.add_argument("--timeout-ms", type=int, help="Symbolic fallback time budget")
    common.add_argument("--tolerance", type=float, help="Float tolerance")
    common.add_argument("--no-cache", action="store_true", help="Disable the verdict cache")
    common.add_argument("--no-fallback", action="store_true",
                        help="Never call the symbolic engine")
    common.add_argument("--json", action="store_true", help="JSON output")
    common.add_argument("--trace", action="store_true", help="Show rule applications")
    common.add_argument("--rules", action="append", metavar="FILE",
                        help="Load extra rules (can be specified multiple times)")
    common.add_argument("--log-level", help="Logging level (default: $MATHEQUIV_LOG_LEVEL)")

    parser = argparse.ArgumentParser(
        prog="mathequiv",
        description="Decide whether two math expressions are equivalent",
        epilog="Examples:\n"
               "  mathequiv check '2x+3x' '5x'\n"
               "  mathequiv canon '(x+2)^2' --trace\n"
               "  mathequiv lines derivation.txt --region EU\n",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        parents=[common],
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    sub = parser.add_subparsers(dest="command")
    check = sub.add_parser("check", parents=[common], help="Compare two expressions")
    check.add_argument("expr1")
    check.add_argument("expr2")
    canon = sub.add_parser("canon", parents=[common], help="Show a canonical form")
    canon.add_argument("expr")
    lines = sub.add_parser("lines", parents=[common],
                           help="Check each line of a file against the previous one")
    lines.add_argument("file", help="Path, or - for stdin")
    sub.add_parser("rules", parents=[common], help="List rules")
    sub.add_parser("repl", parents=[common], help="Interactive session")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    for name, value in OPTION_DEFAULTS.items():
        if not hasattr(args, name):
            setattr(args, name, value() if callable(value) else value)

    configure_logging(level=args.log_level)

    if args.command is None:
        if sys.stdin.isatty():
            args.command = "repl"
        else:
            args.command = "lines"
            args.file = "-"

    try:
        config = build_config(args)
        checker = EquivalenceChecker(library=build_library(args.rules))
        return COMMANDS[args.command](args, checker, config)
    except MathEquivError as e:
        if args.json:
            print(json.dumps(e.to_dict(), indent=2), file=sys.stderr)
        else:
            print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
