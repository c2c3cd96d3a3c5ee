"""
Tests for the Coordinator node, driven synchronously through handle().
"""
from unittest.mock import MagicMock

import pytest

from conftest import N, P, Q, RecordingTransport
from distfactor.constants import KIND_ORDER, Kind
from distfactor.nodes.coordinator import Coordinator, CoordinatorStatus
from distfactor.schemas.messages import (
    Assign, Endpoint, FactorFound, NewClient, NewValue, RegisterDispatcher, Start, Terminate,
)


def worker(i: int) -> Endpoint:
    return Endpoint(host=f"worker{i}", port=40000 + i)


def dispatcher(kind: Kind) -> Endpoint:
    return Endpoint(host=f"{kind.value}-host", port=12000 + KIND_ORDER.index(kind))


class FakeClock:
    def __init__(self, *times):
        self.times = list(times)

    def __call__(self):
        return self.times.pop(0) if len(self.times) > 1 else self.times[0]


@pytest.fixture
def transport():
    return RecordingTransport(Endpoint(host="coordinator", port=10188))


@pytest.fixture
def sink():
    return MagicMock()


@pytest.fixture
def coordinator(transport, fast_settings, sink):
    node = Coordinator(N, transport, fast_settings, result_sink=sink, clock=FakeClock(100.0, 102.0, 107.5))
    node.start()
    return node


def register_all_dispatchers(coordinator):
    for kind in KIND_ORDER:
        coordinator.handle(RegisterDispatcher(kind=kind, callback=dispatcher(kind)))


class TestAssignment:

    def test_first_four_clients_promoted_in_order(self, coordinator, transport):
        for i in range(4):
            coordinator.handle(NewClient(callback=worker(i)))

        assigns = [message for _, message in transport.sent_of(Assign)]
        assert [a.kind for a in assigns] == list(KIND_ORDER)
        assert all(a.promote for a in assigns)
        assert coordinator.promoted == set(KIND_ORDER)

    def test_later_clients_round_robin(self, coordinator, transport):
        for i in range(4):
            coordinator.handle(NewClient(callback=worker(i)))
        register_all_dispatchers(coordinator)

        for i in range(4, 10):
            coordinator.handle(NewClient(callback=worker(i)))

        kinds = [transport.sent_to(worker(i))[0].kind for i in range(4, 10)]
        assert kinds == [Kind.TRIAL_UP, Kind.TRIAL_DOWN, Kind.FERMAT, Kind.POLLARD_P1,
                         Kind.TRIAL_UP, Kind.TRIAL_DOWN]
        assert transport.sent_to(worker(5))[0].dispatcher == dispatcher(Kind.TRIAL_DOWN)
        assert not any(m.promote for m in transport.sent_to(worker(5)))

    def test_client_parked_until_dispatcher_registers(self, coordinator, transport):
        for i in range(5):
            coordinator.handle(NewClient(callback=worker(i)))
        assert transport.sent_to(worker(4)) == []
        assert coordinator.parked[Kind.TRIAL_UP] == [worker(4)]

        coordinator.handle(RegisterDispatcher(kind=Kind.TRIAL_UP, callback=dispatcher(Kind.TRIAL_UP)))

        [assign] = transport.sent_to(worker(4))
        assert assign.kind == Kind.TRIAL_UP
        assert assign.dispatcher == dispatcher(Kind.TRIAL_UP)
        assert Kind.TRIAL_UP not in coordinator.parked

    def test_repeated_new_client_gets_same_kind(self, coordinator, transport):
        for i in range(4):
            coordinator.handle(NewClient(callback=worker(i)))
        register_all_dispatchers(coordinator)
        coordinator.handle(NewClient(callback=worker(4)))
        coordinator.handle(NewClient(callback=worker(4)))

        assert [m.kind for m in transport.sent_to(worker(4))] == [Kind.TRIAL_UP, Kind.TRIAL_UP]
        assert coordinator.client_count == 5

    def test_connected_workers(self, coordinator):
        for i in range(5):
            coordinator.handle(NewClient(callback=worker(i)))
        assert coordinator.connected_workers() == 0
        coordinator.handle(RegisterDispatcher(kind=Kind.TRIAL_UP, callback=dispatcher(Kind.TRIAL_UP)))
        assert coordinator.connected_workers() == 2


class TestRun:

    def test_begin_broadcasts_start(self, coordinator, transport):
        register_all_dispatchers(coordinator)
        assert coordinator.begin()

        starts = transport.sent_of(Start)
        assert {peer for peer, _ in starts} == {dispatcher(k) for k in KIND_ORDER}
        assert all(message.number == N for _, message in starts)
        assert coordinator.status == CoordinatorStatus.DISPATCHING

    def test_start_only_once(self, coordinator):
        assert coordinator.begin()
        assert not coordinator.begin()

    def test_start_over_the_wire(self, coordinator, transport):
        register_all_dispatchers(coordinator)
        coordinator.handle(Start())
        assert len(transport.sent_of(Start)) == 4

    def test_late_dispatcher_gets_current_value(self, coordinator, transport):
        coordinator.begin()
        coordinator.handle(RegisterDispatcher(kind=Kind.FERMAT, callback=dispatcher(Kind.FERMAT)))
        [message] = transport.sent_to(dispatcher(Kind.FERMAT))
        assert message == NewValue(number=N)

    def test_factor_completes_run(self, coordinator, transport, sink):
        register_all_dispatchers(coordinator)
        coordinator.begin()
        coordinator.handle(FactorFound(number=N, kind=Kind.POLLARD_P1, factor=Q))

        assert coordinator.done
        assert coordinator.status == CoordinatorStatus.DONE
        assert coordinator.composite.distinct_factors() == [P, Q]
        terminated = {peer for peer, _ in transport.sent_of(Terminate)}
        assert terminated == {dispatcher(k) for k in KIND_ORDER}
        sink.assert_called_once_with(N, [P, Q], 5.5, Kind.POLLARD_P1)
        assert transport.stopped

    def test_composite_cofactor_broadcasts_new_value(self, transport, fast_settings, sink):
        node = Coordinator(3 * 5 * 7 * 11, transport, fast_settings, result_sink=sink)
        node.start()
        register_all_dispatchers(node)
        node.begin()

        node.handle(FactorFound(number=1155, kind=Kind.TRIAL_UP, factor=15))
        values = [m for _, m in transport.sent_of(NewValue)]
        assert values == [NewValue(number=77)] * 4
        assert not node.done

    def test_stale_factor_dropped(self, coordinator, transport, sink):
        register_all_dispatchers(coordinator)
        coordinator.begin()
        sent_before = len(transport.sent)
        coordinator.handle(FactorFound(number=N * 7, kind=Kind.TRIAL_UP, factor=7))
        assert len(transport.sent) == sent_before
        assert not coordinator.done
        sink.assert_not_called()

    def test_parked_workers_terminated_on_completion(self, coordinator, transport):
        for i in range(5):
            coordinator.handle(NewClient(callback=worker(i)))
        coordinator.begin()
        coordinator.handle(FactorFound(number=N, kind=Kind.TRIAL_UP, factor=P))
        assert transport.sent_to(worker(4)) == [Terminate(reason="factorization complete")]

    def test_new_client_after_completion_is_terminated(self, coordinator, transport):
        coordinator.begin()
        coordinator.handle(FactorFound(number=N, kind=Kind.TRIAL_UP, factor=P))
        coordinator.handle(NewClient(callback=worker(9)))
        assert isinstance(transport.sent_to(worker(9))[0], Terminate)

    def test_prime_input_completes_at_setup(self, transport, fast_settings, sink):
        node = Coordinator(10007, transport, fast_settings, result_sink=sink)
        node.start()
        assert node.done
        sink.assert_called_once_with(10007, [10007], 0.0, None)
        assert not node.begin()

    def test_shutdown_terminates_dispatchers(self, coordinator, transport):
        register_all_dispatchers(coordinator)
        coordinator.shutdown("interrupted")
        assert len(transport.sent_of(Terminate)) == 4
        assert coordinator.stopped


class LockCheckedFactors(list):
    """Factor list that may only be read while ``lock`` is held."""

    def __init__(self, lock, values):
        super().__init__(values)
        self.lock = lock

    def __iter__(self):
        assert self.lock.locked(), "extracted factors read without the coordinator lock"
        return super().__iter__()


class TestCompletionSnapshot:

    def test_factors_read_under_lock_on_completion(self, coordinator, sink):
        composite = coordinator.composite
        composite.extracted_factors = LockCheckedFactors(coordinator.lock, composite.extracted_factors)
        register_all_dispatchers(coordinator)
        coordinator.begin()

        coordinator.handle(FactorFound(number=N, kind=Kind.TRIAL_DOWN, factor=Q))

        sink.assert_called_once_with(N, [P, Q], 5.5, Kind.TRIAL_DOWN)
        assert type(sink.call_args[0][1]) is list

    def test_reported_factors_do_not_alias_composite_state(self, coordinator, sink):
        coordinator.begin()
        coordinator.handle(FactorFound(number=N, kind=Kind.FERMAT, factor=P))

        reported = sink.call_args[0][1]
        coordinator.composite.extracted_factors.append(99)
        assert reported == [P, Q]
