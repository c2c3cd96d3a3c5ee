"""
Command line parsing for the distfactor entry point.
"""
import argparse
import sys
from typing import Dict

from .utils.number_utils import random_number, random_prime


def parse_number(value: str) -> int:
    """
    Parse an integer to factor. Exact for any size, so no scientific notation.

    Raises:
        argparse.ArgumentTypeError: If value is not an integer >= 2
    """
    try:
        result = int(value.replace("_", ""))
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid integer: {value}") from e
    if result < 2:
        raise argparse.ArgumentTypeError(f"Number must be at least 2: {value}")
    return result


def parse_bits(value: str) -> int:
    """Parse a bit length (at least 2)."""
    try:
        result = int(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid bit length: {value}") from e
    if result < 2:
        raise argparse.ArgumentTypeError(f"Bit length must be at least 2: {value}")
    return result


def parse_positive_int(value: str) -> int:
    try:
        result = int(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid integer: {value}") from e
    if result < 1:
        raise argparse.ArgumentTypeError(f"Value must be positive: {value}")
    return result


def add_number_arguments(parser: argparse.ArgumentParser) -> None:
    """The ways to choose the number to factor. Exactly one is required."""
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument('-n', '--number', type=parse_number, help='Factor this integer')
    group.add_argument('-g', '--generate', type=parse_bits, metavar='BITS',
                       help='Factor the product of two random primes of BITS bits each')
    group.add_argument('-r', '--random', type=parse_bits, metavar='BITS',
                       help='Factor a random integer of at most BITS bits')
    group.add_argument('--pq', type=parse_number, nargs=2, metavar=('P', 'Q'),
                       help='Factor P * Q')


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for all distfactor roles."""
    parser = argparse.ArgumentParser(
        prog='distfactor',
        description='Distributed integer factorization with four racing algorithms'
    )
    parser.add_argument('--config', help='Config file path (default: distfactor.yaml if present)')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')
    parser.add_argument('-q', '--quiet', action='store_true', help='Suppress console output except errors')

    subparsers = parser.add_subparsers(dest='command', required=True)

    coordinator = subparsers.add_parser('coordinator', help='Run the coordinator that owns the number')
    add_number_arguments(coordinator)
    coordinator.add_argument('--auto-start', type=parse_positive_int, metavar='K',
                             help='Start automatically once K workers are connected to a dispatcher '
                                  '(default: wait for "factor" on stdin)')

    worker = subparsers.add_parser('worker', help='Run a worker (promoted to dispatcher when needed)')
    worker.add_argument('--coordinator', help='Coordinator host (default: network.coordinator_host)')

    start = subparsers.add_parser('start', help='Tell a running coordinator to start')
    start.add_argument('--coordinator', help='Coordinator host (default: network.coordinator_host)')

    sequential = subparsers.add_parser('sequential', help='Race all four algorithms in this process')
    add_number_arguments(sequential)

    return parser


def resolve_number(args: argparse.Namespace) -> int:
    """Produce the number to factor from whichever number option was given."""
    if args.number is not None:
        return args.number
    if args.generate is not None:
        return random_prime(args.generate) * random_prime(args.generate)
    if args.random is not None:
        # Values below 2 have nothing to factor
        while True:
            number = random_number(args.random)
            if number >= 2:
                return number
    if args.pq is not None:
        p, q = args.pq
        return p * q
    raise ValueError("No number option given")


def validate_args(args: argparse.Namespace) -> Dict[str, str]:
    """
    Check argument combinations argparse cannot express.

    Returns:
        Dictionary mapping argument names to error messages
    """
    errors = {}
    if getattr(args, 'generate', None) is not None and args.generate > 4096:
        errors['generate'] = "-g is limited to 4096-bit primes"
    return errors


def print_validation_errors(errors: Dict[str, str]) -> None:
    """Print validation errors and exit."""
    if errors:
        print("Argument validation errors:", file=sys.stderr)
        for field, message in errors.items():
            print(f"  {field}: {message}", file=sys.stderr)
        sys.exit(1)
