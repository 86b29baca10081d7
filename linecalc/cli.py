"""Command line interface.

Usage:
    linecalc "300$ in rub"          # Single expression
    echo "100 + 50" | linecalc      # Pipe mode
    linecalc -f calculations.txt    # File mode
    linecalc -i                     # Interactive REPL
    linecalc --server               # JSON-RPC over stdin/stdout
    linecalc --web                  # HTTP server
"""

import argparse
import atexit
import logging
import os
import sys
from typing import List, Optional

from linecalc import config
from linecalc.currency import Currency
from linecalc.rates import load_cached_rates, refresh_rates
from linecalc.session import Session
from linecalc.units import known_unit_names
from linecalc.values import Value

logger = logging.getLogger(__name__)

TOTAL_RULE = "─────────────"
COMMANDS = ["help", "clear", "total", "sum", "vars", "quit", "exit"]

HELP_TEXT = """
Commands:
  help     Show this help
  clear    Clear all variables and history
  total    Show sum of all results
  vars     List variables
  quit     Exit the REPL

Examples:
  10 + 20              Basic arithmetic
  20% of 150           Percentage calculation
  tax = 15%            Variable assignment
  100 + tax            Use variable
  $100 in eur          Currency conversion
  2 hours + 30 min     Unit arithmetic
  2 km in miles        Unit conversion
  + 10                 Continue from the previous result
"""


def format_result(line: str, value: Value, quiet: bool = False) -> Optional[str]:
    """Formats one evaluated line for output. None means print nothing."""
    result = str(value)
    if quiet:
        return result or None
    if not result:
        return line
    return f"{line.ljust(config.OUTPUT_PAD)} = {result}"


def eval_and_print(session: Session, line: str, quiet: bool = False):
    output = format_result(line, session.evaluate(line), quiet)
    if output is not None:
        print(output)


def load_rates(session: Session, refresh: bool = False):
    """Applies live, cached, or (failing both) the built-in exchange rates."""
    rates = None
    if refresh:
        rates = refresh_rates(config.RATES_CACHE_FILE)
        if rates is None:
            logger.warning("Could not fetch live rates, falling back to cached rates")

    if rates is None:
        rates = load_cached_rates(config.RATES_CACHE_FILE)
    if rates is None:
        rates = load_cached_rates(config.RATES_CACHE_FILE, ttl=None)
        if rates:
            logger.info("Using expired cached exchange rates")

    if rates:
        applied = session.apply_raw_rates(rates)
        logger.debug(f"Applied {applied} exchange rates")


def _setup_readline(session: Session):
    try:
        import readline
    except ImportError:
        return  # No line editing on this platform

    try:
        readline.read_history_file(config.HISTORY_FILE)
        readline.set_history_length(1000)
    except (FileNotFoundError, OSError):
        pass
    atexit.register(readline.write_history_file, config.HISTORY_FILE)

    words = sorted(
        set(COMMANDS + known_unit_names() + [c.code for c in Currency])
    )

    def completer(text, state):
        candidates = words + [name for name, _ in session.variables()]
        matches = [word for word in candidates if word.startswith(text)]
        if state < len(matches):
            return matches[state]
        return None

    readline.set_completer(completer)
    readline.parse_and_bind("tab: complete")


def run_repl(session: Session, quiet: bool = False):
    """Run the calculator interactively."""
    _setup_readline(session)

    print("linecalc - natural language calculator")
    print("Type expressions to calculate. Press Ctrl+D to exit.\n")

    while True:
        try:
            line = input("> ").strip()
        except EOFError:
            print()
            break
        except KeyboardInterrupt:
            print()
            continue

        if not line:
            continue

        command = line.lower()
        if command in ("quit", "exit"):
            break
        if command == "clear":
            session.clear()
            print("Cleared.")
        elif command in ("total", "sum"):
            print(f"Total: {session.sum()}")
        elif command == "vars":
            variables = session.variables()
            if not variables:
                print("No variables defined.")
            for name, value in variables:
                print(f"{name} = {value}")
        elif command == "help":
            print(HELP_TEXT)
        else:
            eval_and_print(session, line, quiet)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="linecalc", description="A natural language calculator")
    parser.add_argument("expression", nargs="?", help="Expression to evaluate")
    parser.add_argument("--file", "-f", metavar="FILE", help="Read expressions from file")
    parser.add_argument("--interactive", "-i", action="store_true", help="Interactive REPL mode")
    parser.add_argument("--quiet", "-q", action="store_true", help="Show only results (no input echo)")
    parser.add_argument("--total", "-t", action="store_true", help="Show the total after all lines")
    parser.add_argument("--server", action="store_true", help="Serve JSON-RPC requests on stdin/stdout")
    parser.add_argument("--web", action="store_true", help="Start the HTTP server")
    parser.add_argument("--port", type=int, default=config.SERVER_PORT, help="HTTP server port")
    parser.add_argument("--refresh-rates", action="store_true", help="Fetch live exchange rates")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log debug output to stderr")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point that picks the mode from the arguments."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format=config.LOG_FORMAT,
        stream=sys.stderr,
    )

    if args.web:
        from linecalc.server import start_web_server

        start_web_server(port=args.port)
        return 0

    session = Session()
    load_rates(session, args.refresh_rates)

    if args.server:
        from linecalc.rpc import serve_stdio

        serve_stdio(session, sys.stdin, sys.stdout)
        return 0

    if args.expression:
        eval_and_print(session, args.expression, args.quiet)
    elif args.file:
        try:
            with open(os.path.expanduser(args.file), "r", encoding="utf-8") as f:
                lines = f.read().splitlines()
        except OSError as e:
            print(f"Error: cannot read {args.file}: {e}", file=sys.stderr)
            return 1
        for line in lines:
            eval_and_print(session, line, args.quiet)
    elif args.interactive:
        run_repl(session, args.quiet)
    elif not sys.stdin.isatty():
        for line in sys.stdin.read().splitlines():
            eval_and_print(session, line, args.quiet)
    else:
        print("Usage: linecalc <expression>", file=sys.stderr)
        print("       linecalc -f <file>", file=sys.stderr)
        print("       linecalc -i", file=sys.stderr)
        print('       echo "100 + 50" | linecalc', file=sys.stderr)
        return 1

    if args.total:
        print(TOTAL_RULE)
        print(f"Total: {session.sum()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
