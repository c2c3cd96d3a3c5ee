"""
Coordinator node.

Owns the number being factored. Assigns algorithms to workers (promoting the
first worker of each kind to host that kind's dispatcher), starts the run,
and folds every reported factor into the composite state until the
factorization is complete.
"""

import threading
import time
from collections import defaultdict
from enum import Enum
from typing import Callable, Dict, List, Optional, Set

from ..config import Settings
from ..constants import KIND_ORDER, Kind
from ..schemas.messages import (
    Assign, Endpoint, FactorFound, NewClient, NewValue, RegisterDispatcher,
    Start, Terminate,
)
from ..services.composite_state import CompositeState
from ..transport.base import Transport
from .base import Node, Outgoing

ResultCallback = Callable[[int, List[int], float, Optional[Kind]], object]


class CoordinatorStatus(str, Enum):
    SETUP = "setup"
    WAITING = "waiting"
    DISPATCHING = "dispatching"
    DONE = "done"


class Coordinator(Node):
    """
    Args:
        number: Number to factor (>= 2)
        transport: Transport on the coordinator's well-known port
        settings: Application settings
        result_sink: Called once with (number, factors, elapsed, winning kind)
        clock: Monotonic clock, replaceable in tests
    """

    role = "coordinator"

    def __init__(self, number: int, transport: Transport, settings: Optional[Settings] = None,
                 result_sink: Optional[ResultCallback] = None,
                 clock: Callable[[], float] = time.monotonic):
        settings = settings or Settings()
        super().__init__(transport, settings.network)
        self.status = CoordinatorStatus.SETUP
        self.composite = CompositeState(number)
        self.result_sink = result_sink
        self.clock = clock

        self.lock = threading.Lock()
        self.dispatchers: Dict[Kind, Endpoint] = {}
        self.promoted: Set[Kind] = set()
        self.assignments: Dict[Endpoint, Kind] = {}
        self.parked: Dict[Kind, List[Endpoint]] = defaultdict(list)
        self.client_count = 0

        self.created_at = clock()
        self.started_at: Optional[float] = None
        self.elapsed: Optional[float] = None
        self.winner: Optional[Kind] = None
        self.done_event = threading.Event()

        self.on(NewClient, self.on_new_client)
        self.on(RegisterDispatcher, self.on_register_dispatcher)
        self.on(Start, self.on_start)
        self.on(FactorFound, self.on_factor_found)

    @property
    def number(self) -> int:
        return self.composite.original

    @property
    def done(self) -> bool:
        return self.done_event.is_set()

    def start(self) -> None:
        super().start()
        if self.composite.done:
            # Prime input: nothing to distribute
            with self.lock:
                self.status = CoordinatorStatus.DONE
                self.elapsed = 0.0
                factors = list(self.composite.extracted_factors)
            self._complete(factors)
            return
        with self.lock:
            self.status = CoordinatorStatus.WAITING
        self.logger.info(f"Coordinator ready to factor {self.number} at {self.endpoint}")

    def wait_done(self, timeout: Optional[float] = None) -> bool:
        return self.done_event.wait(timeout)

    def connected_workers(self) -> int:
        """Workers whose dispatcher has registered, so they can receive work."""
        with self.lock:
            return sum(1 for kind in self.assignments.values() if kind in self.dispatchers)

    # ==================== Assignment ====================

    def _assignment_for(self, worker: Endpoint, kind: Kind) -> Optional[Outgoing]:
        """Assignment message for a non-promoted worker, or None while its dispatcher is missing."""
        dispatcher = self.dispatchers.get(kind)
        if dispatcher is None:
            return None
        return worker, Assign(kind=kind, dispatcher=dispatcher)

    def on_new_client(self, message: NewClient) -> None:
        worker = message.callback
        outbox = []
        with self.lock:
            if self.status == CoordinatorStatus.DONE:
                outbox.append((worker, Terminate(reason="factorization complete")))
            elif worker in self.assignments:
                # Retried registration: repeat whatever we can tell it now
                outgoing = self._assignment_for(worker, self.assignments[worker])
                if outgoing is not None:
                    outbox.append(outgoing)
            else:
                unpromoted = [kind for kind in KIND_ORDER if kind not in self.promoted]
                if unpromoted:
                    kind = unpromoted[0]
                    self.promoted.add(kind)
                    outbox.append((worker, Assign(kind=kind, promote=True)))
                    self.logger.info(f"Promoting {worker} to host the {kind.value} dispatcher")
                else:
                    kind = KIND_ORDER[self.client_count % len(KIND_ORDER)]
                    outgoing = self._assignment_for(worker, kind)
                    if outgoing is None:
                        self.logger.info(f"Parking {worker} until the {kind.value} dispatcher registers")
                        self.parked[kind].append(worker)
                    else:
                        outbox.append(outgoing)
                self.assignments[worker] = kind
                self.client_count += 1
        self.send_all(outbox)

    def on_register_dispatcher(self, message: RegisterDispatcher) -> None:
        outbox = []
        with self.lock:
            self.dispatchers[message.kind] = message.callback
            self.logger.info(f"{message.kind.value} dispatcher registered at {message.callback}")
            for worker in self.parked.pop(message.kind, []):
                outbox.append(self._assignment_for(worker, message.kind))
            if self.status == CoordinatorStatus.DISPATCHING:
                outbox.append((message.callback, NewValue(number=self.composite.current)))
        self.send_all(outbox)

    # ==================== Run ====================

    def on_start(self, message: Start) -> None:
        self.begin()

    def begin(self) -> bool:
        """
        Start the run: broadcast the number to every registered dispatcher.

        Returns:
            False if the run was already started or is complete
        """
        with self.lock:
            if self.status != CoordinatorStatus.WAITING:
                self.logger.warning(f"Cannot start while {self.status.value}")
                return False
            self.status = CoordinatorStatus.DISPATCHING
            self.started_at = self.clock()
            number = self.composite.current
            outbox = [(d, Start(number=number)) for d in self.dispatchers.values()]
        self.logger.info(f"Starting factorization of {number} on {len(outbox)} dispatchers")
        self.send_all(outbox)
        return True

    def on_factor_found(self, message: FactorFound) -> None:
        with self.lock:
            if self.status == CoordinatorStatus.DONE:
                return
            update = self.composite.record_factor(message.factor)
            if not update.accepted:
                return
            self.winner = message.kind
            if update.done:
                self.status = CoordinatorStatus.DONE
                self.elapsed = self.clock() - (self.started_at or self.created_at)
                outbox = self._terminate_outbox("factorization complete")
                factors = list(self.composite.extracted_factors)
            else:
                outbox = [
                    (d, NewValue(number=update.next_number)) for d in self.dispatchers.values()
                ]

        if update.done:
            self.send_all(outbox, retry=False)
            self._complete(factors)
        else:
            self.send_all(outbox)

    def _terminate_outbox(self, reason: str) -> List[Outgoing]:
        """Terminate for every dispatcher and every still-parked worker. Call with the lock held."""
        outbox = [(d, Terminate(reason=reason)) for d in self.dispatchers.values()]
        for workers in self.parked.values():
            outbox.extend((w, Terminate(reason=reason)) for w in workers)
        self.parked.clear()
        return outbox

    def _complete(self, factors: List[int]) -> None:
        """Report ``factors``, snapshotted under the lock, and stop."""
        self.logger.info(f"{self.number} = {' * '.join(str(f) for f in factors)} in {self.elapsed:.3f}s")
        if self.result_sink is not None:
            self.result_sink(self.number, factors, self.elapsed, self.winner)
        self.done_event.set()
        self.stop()

    def shutdown(self, reason: str = "coordinator shutting down") -> None:
        """Terminate the whole fleet without completing, e.g. on Ctrl-C."""
        with self.lock:
            self.status = CoordinatorStatus.DONE
            outbox = self._terminate_outbox(reason)
        self.send_all(outbox, retry=False)
        self.stop()
