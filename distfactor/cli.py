#!/usr/bin/env python3
"""
distfactor command line entry point.

    distfactor coordinator -g 32 --auto-start 4
    distfactor worker --coordinator 10.0.0.5
    distfactor start
    distfactor sequential --pq 6563 9311
"""
import argparse
import sys
import threading
from typing import Callable, Dict, List, Optional

from .arg_parser import create_parser, print_validation_errors, resolve_number, validate_args
from .config import Settings, get_settings, load_settings
from .constants import Kind
from .exceptions import DistFactorError
from .logging_setup import setup_logging
from .nodes.coordinator import Coordinator
from .nodes.worker import Worker
from .results import ResultSink
from .schemas.messages import Endpoint, Start
from .sequential import factor_sequential
from .transport.http import HttpTransport, send_message
from .user_output import UserOutput

WAIT_INTERVAL = 0.5


def coordinator_endpoint(args: argparse.Namespace, settings: Settings) -> Endpoint:
    host = getattr(args, 'coordinator', None) or settings.network.coordinator_host
    return Endpoint(host=host, port=settings.network.coordinator_port)


def _wait_for_operator(coordinator: Coordinator, output: UserOutput) -> None:
    """Read stdin until the operator asks to start."""
    while not coordinator.stopped:
        try:
            line = input("Type 'factor' (or press Enter) to start: ")
        except EOFError:
            return
        if line.strip().lower() in ("", "factor"):
            coordinator.begin()
            return
        output.warning(f"Unknown command: {line.strip()}", log=False)


def _auto_start(coordinator: Coordinator, workers: int, output: UserOutput) -> None:
    output.info(f"Starting automatically once {workers} workers are connected")
    while not coordinator.stopped:
        if coordinator.connected_workers() >= workers:
            coordinator.begin()
            return
        coordinator.stop_event.wait(WAIT_INTERVAL)


def run_coordinator(args: argparse.Namespace, settings: Settings, output: UserOutput) -> int:
    number = resolve_number(args)
    network = settings.network
    transport = HttpTransport(
        network.bind_host, network.coordinator_port, network.advertise_host,
        role="coordinator", timeout=network.request_timeout,
    )
    sink = ResultSink(settings.results, output)
    coordinator = Coordinator(number, transport, settings, result_sink=sink)

    try:
        coordinator.start()
    except OSError as e:
        output.error(f"Cannot listen on port {network.coordinator_port}: {e}")
        return 1

    output.mode_header("Coordinator", {
        "Number": number,
        "Bit length": number.bit_length(),
        "Listening": f"{network.bind_host}:{network.coordinator_port}",
    })

    if not coordinator.done:
        if args.auto_start:
            starter = threading.Thread(target=_auto_start, args=(coordinator, args.auto_start, output), daemon=True)
        else:
            starter = threading.Thread(target=_wait_for_operator, args=(coordinator, output), daemon=True)
        starter.start()

    try:
        while not coordinator.wait(WAIT_INTERVAL):
            pass
    except KeyboardInterrupt:
        output.warning("Interrupted, terminating all nodes")
        coordinator.shutdown("coordinator interrupted")
        return 130
    return 0


def run_worker(args: argparse.Namespace, settings: Settings, output: UserOutput) -> int:
    network = settings.network
    coordinator = coordinator_endpoint(args, settings)

    def dispatcher_transport(kind: Kind) -> HttpTransport:
        return HttpTransport(
            network.bind_host, settings.dispatcher_port(kind), network.advertise_host,
            role=f"{kind.value} dispatcher", timeout=network.request_timeout,
        )

    transport = HttpTransport(
        network.bind_host, network.worker_port, network.advertise_host,
        role="worker", timeout=network.request_timeout,
    )
    worker = Worker(transport, coordinator, settings, dispatcher_transport_factory=dispatcher_transport)

    try:
        worker.start()
    except OSError as e:
        output.error(f"Cannot open worker endpoint: {e}")
        return 1

    output.mode_header("Worker", {"Endpoint": worker.endpoint, "Coordinator": coordinator})
    try:
        while not worker.wait(WAIT_INTERVAL):
            pass
    except KeyboardInterrupt:
        output.warning("Interrupted, stopping worker")
        worker.terminate("worker interrupted")
        return 130

    if worker.failure:
        output.error(f"Worker stopped: {worker.failure}")
        return 1
    output.info(f"Worker finished after {worker.rounds_completed} search rounds")
    return 0


def run_start(args: argparse.Namespace, settings: Settings, output: UserOutput) -> int:
    coordinator = coordinator_endpoint(args, settings)
    try:
        send_message(coordinator, Start(), timeout=settings.network.request_timeout)
    except DistFactorError as e:
        output.error(f"Could not start coordinator at {coordinator}: {e}")
        return 1
    output.success(f"Start sent to {coordinator}")
    return 0


def run_sequential(args: argparse.Namespace, settings: Settings, output: UserOutput) -> int:
    number = resolve_number(args)
    output.mode_header("Sequential race", {"Number": number, "Bit length": number.bit_length()})
    result = factor_sequential(number, settings.search)
    ResultSink(settings.results, output).record(
        result.number, result.factors, result.elapsed, result.algorithm
    )
    return 0


COMMANDS: Dict[str, Callable[[argparse.Namespace, Settings, UserOutput], int]] = {
    'coordinator': run_coordinator,
    'worker': run_worker,
    'start': run_start,
    'sequential': run_sequential,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)
    print_validation_errors(validate_args(args))

    settings = load_settings(args.config) if args.config else get_settings()
    if args.verbose:
        settings = settings.model_copy(deep=True)
        settings.logging.level = "DEBUG"
    setup_logging(settings.logging)

    output = UserOutput(quiet=args.quiet)
    return COMMANDS[args.command](args, settings, output)


if __name__ == '__main__':
    sys.exit(main())
