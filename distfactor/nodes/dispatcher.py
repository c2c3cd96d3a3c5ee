"""
Algorithm dispatcher: one per algorithm kind.

Keeps the registration table of its workers, partitions the search space of
the current number over them, hands out the next piece of work when a worker
reports failure, and forwards factors to the coordinator.
"""

import threading
from typing import Dict, List, Optional

from pydantic import BaseModel

from ..config import Settings
from ..constants import Kind
from ..schemas.messages import (
    Endpoint, FactorFound, Failed, NewValue, Register, RegisterDispatcher,
    Run, Start, Terminate,
)
from ..services.partitioning import SearchPartitioner, create_partitioner
from ..transport.base import Transport
from .base import Node, Outgoing


class AlgorithmDispatcher(Node):
    """
    Partition one algorithm's search space across its registered workers.

    Args:
        kind: Algorithm this dispatcher serves
        transport: Transport listening on the dispatcher's well-known port
        coordinator: Coordinator endpoint for registration and factor reports
        settings: Application settings
        colocated_worker: The worker hosting this dispatcher in-process, if any
    """

    role = "dispatcher"

    def __init__(self, kind: Kind, transport: Transport, coordinator: Endpoint,
                 settings: Optional[Settings] = None, colocated_worker=None):
        settings = settings or Settings()
        super().__init__(transport, settings.network)
        self.kind = kind
        self.role = f"{kind.value} dispatcher"
        self.coordinator = coordinator
        self.search_settings = settings.search
        self.colocated_worker = colocated_worker

        self.lock = threading.Lock()
        # Insertion ordered: worker endpoint -> last issued state (None while idle)
        self.workers: Dict[Endpoint, Optional[BaseModel]] = {}
        self.number: Optional[int] = None
        self.partitioner: Optional[SearchPartitioner] = None
        self.terminated = False
        self.ready = threading.Event()

        self.on(Register, self.on_register)
        self.on(Start, self.on_start)
        self.on(NewValue, self.on_new_value)
        self.on(Failed, self.on_failed)
        self.on(FactorFound, self.on_factor_found)
        self.on(Terminate, self.on_terminate)

    def start(self) -> None:
        """Open the listening endpoint, then announce ourselves to the coordinator."""
        super().start()
        self.ready.set()
        self.send(self.coordinator, RegisterDispatcher(kind=self.kind, callback=self.endpoint))

    # ==================== Rounds ====================

    def _begin_round(self, number: int) -> List[Outgoing]:
        """Partition ``number`` over every registered worker. Call with the lock held."""
        self.number = number
        self.partitioner = create_partitioner(self.kind, number, self.search_settings)
        workers = list(self.workers)
        states = self.partitioner.partition(len(workers))
        self.logger.info(
            f"{self.kind.value}: new round for {number} over {len(workers)} workers"
        )

        outbox = []
        for i, worker in enumerate(workers):
            state = states[i] if i < len(states) else None
            self.workers[worker] = state
            if state is not None:
                outbox.append((worker, Run(number=number, state=state)))
        return outbox

    def on_start(self, message: Start) -> None:
        if message.number is None:
            self.logger.warning("start without a number, ignoring")
            return
        self._new_round(message.number)

    def on_new_value(self, message: NewValue) -> None:
        self._new_round(message.number)

    def _new_round(self, number: int) -> None:
        with self.lock:
            if self.terminated:
                return
            outbox = self._begin_round(number)
        self.send_all(outbox)

    # ==================== Workers ====================

    def on_register(self, message: Register) -> None:
        if message.kind != self.kind:
            self.logger.warning(
                f"Worker {message.callback} runs {message.kind.value}, not {self.kind.value}; ignoring"
            )
            return

        outbox = []
        with self.lock:
            if self.terminated:
                return
            if message.callback in self.workers:
                self.logger.debug(f"Worker {message.callback} already registered")
                return
            self.workers[message.callback] = None
            self.logger.info(f"Registered worker {message.callback} ({len(self.workers)} total)")

            # A round is already running: the newcomer gets the next piece right away
            if self.partitioner is not None:
                state = self.partitioner.next_state()
                self.workers[message.callback] = state
                if state is not None:
                    outbox.append((message.callback, Run(number=self.number, state=state)))
        self.send_all(outbox)

    def on_failed(self, message: Failed) -> None:
        outbox = []
        with self.lock:
            if self.terminated:
                return
            if self.partitioner is None or message.number != self.number:
                self.logger.debug(
                    f"Dropping stale failed report from {message.callback} for {message.number}"
                )
                return
            if message.kind != self.kind:
                self.logger.warning(f"Failed report for {message.kind.value} sent to {self.kind.value}")
                return
            if message.callback not in self.workers:
                self.logger.info(f"First contact from {message.callback} via failed report")

            state = self.partitioner.next_state(message.state)
            self.workers[message.callback] = state
            if state is None:
                self.logger.info(f"{self.kind.value} space exhausted for {self.number}, {message.callback} idles")
            else:
                outbox.append((message.callback, Run(number=self.number, state=state)))
        self.send_all(outbox)

    def on_factor_found(self, message: FactorFound) -> None:
        self.logger.info(f"Worker {message.callback} found factor {message.factor} of {message.number}")
        self.send(self.coordinator, message)

    # ==================== Shutdown ====================

    def on_terminate(self, message: Terminate) -> None:
        self.terminate(message.reason)

    def terminate(self, reason: Optional[str] = None) -> None:
        """Relay terminate to every worker but our host, stop the host, then stop."""
        with self.lock:
            if self.terminated:
                return
            self.terminated = True
            colocated = self.colocated_worker
            skip = colocated.endpoint if colocated is not None else None
            outbox = [
                (worker, Terminate(reason=reason))
                for worker in self.workers
                if worker != skip
            ]
            self.workers.clear()

        self.send_all(outbox, retry=False)
        if colocated is not None:
            colocated.terminate(reason)
        self.stop()
