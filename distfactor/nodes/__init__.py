from .coordinator import Coordinator, CoordinatorStatus
from .dispatcher import AlgorithmDispatcher
from .worker import Worker, WorkerStatus

__all__ = ["Coordinator", "CoordinatorStatus", "AlgorithmDispatcher", "Worker", "WorkerStatus"]
