# uidscan.py
"""
UID bus scanner.

Enumerates every device on the line whose UID starts with one of the
given two-character prefixes. Probes go out on stdout (or --port),
replies come back on stdin. Discovered UIDs are listed on stderr.

    uidscan [--timeout MS] <prefix> [<prefix> ...]
"""
import sys

from uid_bus import BusConfig, UidScanner, open_transport, setup_logging
from uid_bus.cli import BusArgumentParser, add_common_arguments, non_negative_int
from uid_bus.config import DEFAULT_TIMEOUT_MS
from uid_bus.errors import BusClosedError, ConfigError
from uid_bus.scanner import validate_prefix


def build_parser() -> BusArgumentParser:
    parser = BusArgumentParser(prog='uidscan', description='UID bus scanner')
    parser.add_argument('prefixes', nargs='+', metavar='prefix',
                        help='Two-character vendor prefix to enumerate')
    parser.add_argument('-t', '--timeout', type=non_negative_int, default=DEFAULT_TIMEOUT_MS,
                        help=f'Per-probe reply timeout in ms (default: {DEFAULT_TIMEOUT_MS})')
    add_common_arguments(parser)
    return parser


def print_summary(result, out=None):
    out = out or sys.stderr
    print("\n--- Scan complete ---", file=out)
    for uid in result.found:
        print(f"FOUND:     {uid}", file=out)
    for run in result.runs:
        line = (f"  {run.prefix}: {len(run.found)} UID(s), "
                f"{run.probes} probes, {run.collisions} collisions")
        if run.unresolved:
            line += f", {len(run.unresolved)} unresolved"
        if run.closed:
            line += " (line closed)"
        print(line, file=out)
    if not result.found:
        print("No responding device found.", file=out)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, args.log_file)

    try:
        config = BusConfig(timeout_ms=args.timeout, port=args.port, baud_rate=args.baud)
        for prefix in args.prefixes:
            validate_prefix(prefix)
    except ConfigError as e:
        print(f"uidscan: error: {e}", file=sys.stderr)
        return 1

    try:
        with open_transport(config) as transport:
            result = UidScanner(transport, config).scan(args.prefixes)
    except BusClosedError as e:
        print(f"uidscan: error: {e}", file=sys.stderr)
        return 1

    print_summary(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
