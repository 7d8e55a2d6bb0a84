"""Sync state machine.

The lifecycle is cyclic::

    idle --SYNC--> syncing --COMPLETE--> success --RESET--> idle
                           --ERROR-----> error   --RESET--> idle

:func:`transition` is the pure part: given a :class:`Snapshot` and an event it
returns the next snapshot, or None when the event does not apply in the
current state (such events are ignored, never queued for later).

:class:`SyncMachine` is the single shared instance the views observe. It
applies transitions synchronously on its own thread and runs the side effects:
the transport runs in a :class:`SyncWorker` thread whose result comes back as
COMPLETE or ERROR, a successful outcome with changes is published on the
:class:`~ExpenseSync.core.emitter.SyncNotificationEmitter`, and the success
state resets itself after :data:`SUCCESS_DISPLAY_MS`.

At most one transport call is in flight. A run cannot be cancelled, so SYNC is
ignored until the previous transport call has returned, even when COMPLETE or
ERROR was sent from outside in the meantime.
"""
import collections
import dataclasses
import enum
import logging
from typing import Any, Callable, Deque, Dict, List, Optional, Set, Tuple

from PySide6 import QtCore

from .emitter import SyncNotificationEmitter, SyncOutcome
from ..settings.lib import SyncConfig

SUCCESS_DISPLAY_MS: int = 2000
STOP_TIMEOUT_MS: int = 5000

Transport = Callable[['SyncRequest'], SyncOutcome]


class State(enum.StrEnum):
    """Sync lifecycle states. Stopped is terminal and only reached through stop()."""
    Idle = 'idle'
    Syncing = 'syncing'
    Success = 'success'
    Error = 'error'
    Stopped = 'stopped'


class Event(enum.StrEnum):
    Sync = 'SYNC'
    Complete = 'COMPLETE'
    Error = 'ERROR'
    Reset = 'RESET'


TRANSITIONS: Dict[Tuple[State, Event], State] = {
    (State.Idle, Event.Sync): State.Syncing,
    (State.Syncing, Event.Complete): State.Success,
    (State.Syncing, Event.Error): State.Error,
    (State.Success, Event.Reset): State.Idle,
    (State.Error, Event.Reset): State.Idle,
}


@dataclasses.dataclass(frozen=True)
class SyncRequest:
    """Everything a transport needs for one run, captured when the sync starts.

    Attributes:
        config: Repository and credential.
        expenses: The local ledger as records, soft-deleted rows included.
        settings: The local settings, or None when settings do not take part in sync.
    """
    config: SyncConfig
    expenses: Tuple[Dict[str, Any], ...] = ()
    settings: Optional[Dict[str, Any]] = None


@dataclasses.dataclass(frozen=True)
class Snapshot:
    """Immutable view of the machine.

    Attributes:
        state: The current state.
        error: Advisory error text, only set in the error state.
        outcome: The last outcome, only set in the success state.
        config: The configuration captured by the current or last sync run.
        request: The request of the running sync, only set in the syncing state.
    """
    state: State = State.Idle
    error: Optional[str] = None
    outcome: Optional[SyncOutcome] = None
    config: Optional[SyncConfig] = None
    request: Optional[SyncRequest] = dataclasses.field(default=None, repr=False, compare=False)

    @property
    def is_idle(self) -> bool:
        return self.state == State.Idle

    @property
    def is_syncing(self) -> bool:
        return self.state == State.Syncing

    @property
    def is_success(self) -> bool:
        return self.state == State.Success

    @property
    def is_error(self) -> bool:
        return self.state == State.Error


def transition(snapshot: Snapshot, event: Event, payload: Any = None) -> Optional[Snapshot]:
    """Compute the snapshot that follows event.

    Args:
        snapshot: The current snapshot.
        event: The event to apply.
        payload: SyncRequest (or a bare SyncConfig) for SYNC, SyncOutcome for
            COMPLETE, the message for ERROR.

    Returns:
        Snapshot | None: The next snapshot, or None if event is not accepted in this state.

    Raises:
        TypeError: If the payload does not match the event.
    """
    event = Event(event)
    target = TRANSITIONS.get((snapshot.state, event))
    if target is None:
        return None

    if event == Event.Sync:
        if isinstance(payload, SyncConfig):
            payload = SyncRequest(config=payload)
        if not isinstance(payload, SyncRequest):
            raise TypeError(f'SYNC requires a SyncRequest or SyncConfig, got {type(payload)}.')
        return Snapshot(state=target, config=payload.config, request=payload)

    if event == Event.Complete:
        if not isinstance(payload, SyncOutcome):
            raise TypeError(f'COMPLETE requires a SyncOutcome, got {type(payload)}.')
        return Snapshot(state=target, outcome=payload, config=snapshot.config)

    if event == Event.Error:
        message = str(payload) if payload else 'Unknown error'
        return Snapshot(state=target, error=message, config=snapshot.config)

    return Snapshot(state=target, config=snapshot.config)


#: Workers whose machine stopped before their transport returned. A running
#: QThread must outlive its last Python reference, so they are held here until
#: they finish.
_detached_workers: Set['SyncWorker'] = set()


def _detach(worker: 'SyncWorker') -> None:
    _detached_workers.add(worker)
    worker.finished.connect(lambda: _detached_workers.discard(worker))
    # finished may have fired before the connection was made
    if worker.isFinished():
        _detached_workers.discard(worker)


def detached_workers() -> Tuple['SyncWorker', ...]:
    """Workers still running for a stopped machine."""
    return tuple(_detached_workers)


class SyncWorker(QtCore.QThread):
    """Runs one transport call off the GUI thread.

    Signals:
        resultReady (int, object): Run id and the SyncOutcome on success.
        errorOccurred (int, str): Run id and the error message on failure.
    """
    resultReady = QtCore.Signal(int, object)
    errorOccurred = QtCore.Signal(int, str)

    def __init__(self, run_id: int, transport: Transport, request: SyncRequest) -> None:
        super().__init__()
        self.run_id = run_id
        self.transport = transport
        self.request = request

    def run(self) -> None:
        config = self.request.config
        logging.debug(
            f'Sync run {self.run_id} started against {config.repo}@{config.branch} '
            f'with {len(self.request.expenses)} local expense(s)'
        )
        try:
            outcome = self.transport(self.request)
        except Exception as ex:
            logging.error(f'Sync run {self.run_id} failed: {ex}')
            self.errorOccurred.emit(self.run_id, str(ex) or ex.__class__.__name__)
            return

        if not isinstance(outcome, SyncOutcome):
            msg = f'Transport returned {type(outcome).__name__}, expected SyncOutcome.'
            logging.error(msg)
            self.errorOccurred.emit(self.run_id, msg)
            return

        logging.debug(f'Sync run {self.run_id} finished: {outcome}')
        self.resultReady.emit(self.run_id, outcome)


class SyncMachine(QtCore.QObject):
    """The shared sync orchestrator.

    Events sent while another event is being processed (for example from a
    slot connected to :attr:`stateChanged`) run after it, in order.

    Signals:
        snapshotChanged (object): Emitted with the new Snapshot after every transition.
        stateChanged (str): Emitted with the new state after every transition.
        syncSucceeded (object): Emitted with the SyncOutcome on entering success.
        syncFailed (str): Emitted with the error message on entering error.
    """
    snapshotChanged = QtCore.Signal(object)
    stateChanged = QtCore.Signal(str)
    syncSucceeded = QtCore.Signal(object)
    syncFailed = QtCore.Signal(str)

    def __init__(self, transport: Transport, emitter: SyncNotificationEmitter,
                 success_display_ms: int = SUCCESS_DISPLAY_MS,
                 parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.transport = transport
        self.emitter = emitter

        self._snapshot: Snapshot = Snapshot()
        self._run_id: int = 0
        self._workers: List[SyncWorker] = []
        self._queue: Deque[Tuple[Event, Any]] = collections.deque()
        self._processing: bool = False

        self._reset_timer = QtCore.QTimer(self)
        self._reset_timer.setSingleShot(True)
        self._reset_timer.setInterval(success_display_ms)
        self._reset_timer.timeout.connect(self.reset)

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    @property
    def state(self) -> State:
        return self._snapshot.state

    @property
    def is_stopped(self) -> bool:
        return self._snapshot.state == State.Stopped

    @property
    def is_busy(self) -> bool:
        """True while a transport call has not returned yet."""
        return any(not w.isFinished() for w in self._workers)

    def sync(self, config: SyncConfig | SyncRequest) -> bool:
        """Request a sync. Ignored unless idle and no transport call is still running.

        Returns:
            bool: True if the sync started.
        """
        return self.send(Event.Sync, config)

    def complete(self, outcome: SyncOutcome) -> bool:
        return self.send(Event.Complete, outcome)

    def fail(self, message: str) -> bool:
        return self.send(Event.Error, message)

    @QtCore.Slot()
    def reset(self) -> bool:
        return self.send(Event.Reset)

    def send(self, event: Event | str, payload: Any = None) -> bool:
        """Apply event.

        Returns:
            bool: True if the event caused a transition. When called re-entrantly
            the event is queued and True means it was accepted for processing.
        """
        event = Event(event)
        if self.is_stopped:
            logging.debug(f'Sync machine stopped, ignoring {event}.')
            return False

        if self._processing:
            self._queue.append((event, payload))
            return True

        self._processing = True
        try:
            accepted = self._process(event, payload)
            while self._queue:
                queued_event, queued_payload = self._queue.popleft()
                self._process(queued_event, queued_payload)
        finally:
            self._processing = False
        return accepted

    def _process(self, event: Event, payload: Any) -> bool:
        if self.is_stopped:
            return False

        if event == Event.Sync and self.is_busy:
            logging.debug('The previous transport call has not returned yet, ignoring SYNC.')
            return False

        previous = self._snapshot
        snapshot = transition(previous, event, payload)
        if snapshot is None:
            logging.debug(f'Ignoring {event} in state "{previous.state}".')
            return False

        logging.debug(f'Sync machine: {previous.state} --{event}--> {snapshot.state}')
        self._snapshot = snapshot

        if snapshot.state == State.Syncing:
            self._start_worker(snapshot.request)
        elif snapshot.state == State.Success:
            if snapshot.outcome.has_changes:
                self.emitter.publish(snapshot.outcome)
            else:
                logging.debug('Sync finished without changes, nothing to publish.')
            self._reset_timer.start()
        elif snapshot.state == State.Idle:
            self._reset_timer.stop()

        self.snapshotChanged.emit(snapshot)
        self.stateChanged.emit(str(snapshot.state))

        if snapshot.state == State.Success:
            self.syncSucceeded.emit(snapshot.outcome)
        elif snapshot.state == State.Error:
            self.syncFailed.emit(snapshot.error)
        return True

    def _start_worker(self, request: SyncRequest) -> None:
        self._workers = [w for w in self._workers if not w.isFinished()]

        self._run_id += 1
        worker = SyncWorker(self._run_id, self.transport, request)
        worker.resultReady.connect(self._on_worker_result)
        worker.errorOccurred.connect(self._on_worker_error)
        self._workers.append(worker)
        worker.start()

    @QtCore.Slot(int, object)
    def _on_worker_result(self, run_id: int, outcome: SyncOutcome) -> None:
        if run_id != self._run_id:
            logging.debug(f'Discarding result of stale sync run {run_id}.')
            return
        self.send(Event.Complete, outcome)

    @QtCore.Slot(int, str)
    def _on_worker_error(self, run_id: int, message: str) -> None:
        if run_id != self._run_id:
            logging.debug(f'Discarding error of stale sync run {run_id}.')
            return
        self.send(Event.Error, message)

    def wait(self, timeout_ms: int = STOP_TIMEOUT_MS) -> bool:
        """Block until every transport worker has returned.

        Returns:
            bool: True if all workers finished within the timeout.
        """
        return all(w.wait(timeout_ms) for w in self._workers)

    def stop(self, timeout_ms: int = STOP_TIMEOUT_MS) -> None:
        """Shut the machine down for good. Later events and worker results are ignored.

        Waits up to timeout_ms for a running transport call. A call that is still
        running afterwards is detached: its worker is kept alive until the
        transport returns and its result is dropped.
        """
        if self.is_stopped:
            return
        logging.debug('Stopping sync machine.')

        self._reset_timer.stop()
        self._queue.clear()
        self._run_id += 1

        self._snapshot = Snapshot(state=State.Stopped, config=self._snapshot.config)
        self.snapshotChanged.emit(self._snapshot)
        self.stateChanged.emit(str(State.Stopped))

        if not self.wait(timeout_ms):
            logging.warning('A sync run is still in progress after stop, detaching it.')

        for worker in self._workers:
            if not worker.isFinished():
                _detach(worker)
        self._workers.clear()
