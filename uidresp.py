# uidresp.py
"""
UID bus responder.

Plays every device in the argument list at once: reads probes and
control lines from stdin (or --port) and answers on stdout with
- the UID, when exactly one unmuted device matches,
- a collision reply, when several match,
- nothing, when none match.

    uidresp <uid1> <uid2> ...
"""
import sys

from uid_bus import BusConfig, UidResponder, open_transport, setup_logging
from uid_bus.cli import BusArgumentParser, add_common_arguments
from uid_bus.config import COLLISION_MODES
from uid_bus.errors import BusClosedError, ConfigError, UsageError


def build_parser() -> BusArgumentParser:
    parser = BusArgumentParser(prog='uidresp', description='UID bus responder')
    parser.add_argument('uids', nargs='+', metavar='uid',
                        help='Full UID of a device on the bus')
    parser.add_argument('--collision', default='auto', choices=COLLISION_MODES,
                        help='Collision reply: auto (empty line for CB devices, '
                             'random mixture otherwise), empty or mixture')
    parser.add_argument('--seed', type=int, default=None,
                        help='Seed for the collision mixture generator')
    add_common_arguments(parser)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, args.log_file)

    try:
        config = BusConfig(rng_seed=args.seed, collision_mode=args.collision,
                           port=args.port, baud_rate=args.baud)
        responder = UidResponder(args.uids, config)
    except (ConfigError, UsageError) as e:
        print(f"uidresp: error: {e}", file=sys.stderr)
        return 1

    try:
        with open_transport(config) as transport:
            return responder.serve(transport)
    except BusClosedError as e:
        print(f"uidresp: error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
