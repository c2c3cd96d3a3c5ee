"""
Worker node.

A worker asks the coordinator for an algorithm, registers with that
algorithm's dispatcher (hosting the dispatcher itself when promoted) and then
runs one search at a time, reporting a factor or its resumable state after
every round.
"""

import queue
import threading
from enum import Enum
from typing import Callable, Optional

from ..config import Settings
from ..constants import Kind
from ..schemas.messages import Assign, Endpoint, NewClient, Register, Run, Terminate
from ..services.search_algorithms import run_search
from ..transport.base import Transport
from .base import Node
from .dispatcher import AlgorithmDispatcher

DispatcherTransportFactory = Callable[[Kind], Transport]


class WorkerStatus(str, Enum):
    UNASSIGNED = "unassigned"
    REGISTERED = "registered"
    AWAITING = "awaiting"
    SEARCHING = "searching"
    REPORTING = "reporting"
    TERMINATED = "terminated"


class Worker(Node):
    """
    Run searches for whichever algorithm the coordinator assigns.

    Args:
        transport: Transport for the worker's own endpoint
        coordinator: Coordinator endpoint
        settings: Application settings
        dispatcher_transport_factory: Builds the listening transport for a
            dispatcher this worker is promoted to host
    """

    role = "worker"

    def __init__(self, transport: Transport, coordinator: Endpoint,
                 settings: Optional[Settings] = None,
                 dispatcher_transport_factory: Optional[DispatcherTransportFactory] = None):
        self.settings = settings or Settings()
        super().__init__(transport, self.settings.network)
        self.coordinator = coordinator
        self.dispatcher_transport_factory = dispatcher_transport_factory

        self.lock = threading.Lock()
        self.status = WorkerStatus.UNASSIGNED
        self.kind: Optional[Kind] = None
        self.dispatcher_endpoint: Optional[Endpoint] = None
        self.dispatcher: Optional[AlgorithmDispatcher] = None
        self.assigned = threading.Event()
        self.rounds_completed = 0
        # Set when the worker gives up during setup
        self.failure: Optional[str] = None

        self._runs: "queue.Queue[Optional[Run]]" = queue.Queue()
        self._search_thread = threading.Thread(target=self._search_loop, name="worker-search", daemon=True)

        self.on(Assign, self.on_assign)
        self.on(Run, self.on_run)
        self.on(Terminate, self.on_terminate)

    def start(self) -> None:
        """Open our endpoint and ask the coordinator for an assignment."""
        super().start()
        self._search_thread.start()
        self.logger.info(f"Worker listening at {self.endpoint}, contacting coordinator {self.coordinator}")
        self.send(self.coordinator, NewClient(callback=self.endpoint))

    def wait_assigned(self, timeout: Optional[float] = None) -> bool:
        return self.assigned.wait(timeout)

    # ==================== Assignment ====================

    def on_assign(self, message: Assign) -> None:
        with self.lock:
            if self.kind is not None or self.status == WorkerStatus.TERMINATED:
                self.logger.debug(f"Ignoring repeated assignment to {message.kind.value}")
                return
            self.kind = message.kind

        self.logger.info(
            f"Assigned {message.kind.value}" + (" and promoted to dispatcher" if message.promote else "")
        )
        if message.promote:
            dispatcher_endpoint = self._host_dispatcher(message.kind)
            if dispatcher_endpoint is None:
                self.failure = f"could not host the {message.kind.value} dispatcher"
                self.terminate(self.failure)
                return
        else:
            dispatcher_endpoint = message.dispatcher

        with self.lock:
            self.dispatcher_endpoint = dispatcher_endpoint
            self.status = WorkerStatus.REGISTERED

        if self.send(dispatcher_endpoint, Register(kind=message.kind, callback=self.endpoint)):
            with self.lock:
                if self.status == WorkerStatus.REGISTERED:
                    self.status = WorkerStatus.AWAITING
            self.assigned.set()

    def _host_dispatcher(self, kind: Kind) -> Optional[Endpoint]:
        """Start the dispatcher for ``kind`` in-process and wait for it to come up."""
        if self.dispatcher_transport_factory is None:
            self.logger.error(f"Promoted to {kind.value} dispatcher but cannot host one")
            return None

        dispatcher = AlgorithmDispatcher(
            kind,
            self.dispatcher_transport_factory(kind),
            self.coordinator,
            self.settings,
            colocated_worker=self,
        )
        with self.lock:
            self.dispatcher = dispatcher
        start_failed = threading.Event()

        def start_dispatcher():
            try:
                dispatcher.start()
            except OSError as e:
                self.logger.error(f"Cannot listen for the {kind.value} dispatcher at {dispatcher.endpoint}: {e}")
                start_failed.set()

        threading.Thread(target=start_dispatcher, name=f"{kind.value}-dispatcher-start", daemon=True).start()

        search = self.settings.search
        for attempt in range(1, search.dispatcher_ready_attempts + 1):
            if dispatcher.ready.wait(search.dispatcher_ready_poll_seconds):
                return dispatcher.endpoint
            if self.stopped or start_failed.is_set():
                return None
            self.logger.info(f"Waiting for {kind.value} dispatcher (attempt {attempt})")

        self.logger.error(
            f"{kind.value} dispatcher did not come up after {search.dispatcher_ready_attempts} attempts"
        )
        return None

    # ==================== Searching ====================

    def on_run(self, message: Run) -> None:
        if self.stopped:
            return
        if message.kind != self.kind:
            self.logger.warning(f"Got {message.kind.value} work but run {self.kind.value if self.kind else 'nothing'}")
            return
        self._runs.put(message)

    def _search_loop(self) -> None:
        while True:
            message = self._runs.get()
            if message is None or self.stopped:
                return
            self._search(message)

    def _search(self, message: Run) -> None:
        with self.lock:
            if self.status == WorkerStatus.TERMINATED:
                return
            self.status = WorkerStatus.SEARCHING
            dispatcher_endpoint = self.dispatcher_endpoint

        outcome = run_search(message.number, message.state)

        with self.lock:
            if self.status == WorkerStatus.TERMINATED:
                return
            self.status = WorkerStatus.REPORTING
            self.rounds_completed += 1

        if outcome.found:
            self.logger.info(f"Found factor {outcome.factor} of {message.number}")
            report = message.report_factor(outcome.factor, self.endpoint)
        else:
            report = message.report_failure(outcome.state, self.endpoint)
        self.send(dispatcher_endpoint, report)

        with self.lock:
            if self.status == WorkerStatus.REPORTING:
                self.status = WorkerStatus.AWAITING

    # ==================== Shutdown ====================

    def on_terminate(self, message: Terminate) -> None:
        self.terminate(message.reason)

    def terminate(self, reason: Optional[str] = None) -> None:
        """Stop taking work; forward to our own dispatcher at most once."""
        with self.lock:
            if self.status == WorkerStatus.TERMINATED:
                return
            self.status = WorkerStatus.TERMINATED
            dispatcher = self.dispatcher

        self.logger.info(f"Worker {self.endpoint} terminating" + (f": {reason}" if reason else ""))
        self._runs.put(None)
        if dispatcher is not None:
            dispatcher.terminate(reason)
        self.stop()
