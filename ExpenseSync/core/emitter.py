"""Broadcast channel for completed syncs.

The sync machine publishes a :class:`SyncOutcome` here when a sync actually
changed files; the store provider subscribes and turns it into a notification.

Delivery is live-subscribers-only: a publish reaches the listeners registered
at that moment, in registration order, once each, and is never replayed.
"""
import dataclasses
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple


@dataclasses.dataclass(frozen=True)
class SyncOutcome:
    """Result of one completed sync.

    Attributes:
        local_files_updated: Files changed locally by the pull.
        remote_files_updated: Files changed in the repository by the push.
        message: Optional summary from the transport.
        expenses: The merged ledger to apply locally, or None to keep the local one.
        settings: Downloaded settings to apply locally, or None.
    """
    local_files_updated: int = 0
    remote_files_updated: int = 0
    message: str = ''
    expenses: Optional[Tuple[Dict[str, Any], ...]] = dataclasses.field(default=None, repr=False, compare=False)
    settings: Optional[Dict[str, Any]] = dataclasses.field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        for name in ('local_files_updated', 'remote_files_updated'):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ValueError(f'SyncOutcome.{name} must be a non-negative int, got {value!r}.')

    @property
    def has_changes(self) -> bool:
        return self.local_files_updated > 0 or self.remote_files_updated > 0


Listener = Callable[[SyncOutcome], None]


class _Registration:
    """One subscribe() call. The same callable may be registered more than once."""
    __slots__ = ('listener',)

    def __init__(self, listener: Listener) -> None:
        self.listener = listener


class SyncNotificationEmitter:
    """Registry of sync outcome listeners."""

    def __init__(self) -> None:
        self._registrations: List[_Registration] = []

    def __len__(self) -> int:
        return len(self._registrations)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register listener.

        Returns:
            Callable[[], None]: Removes this registration. Safe to call any number of times.
        """
        if not callable(listener):
            raise TypeError(f'Listener must be callable, got {type(listener)}.')

        registration = _Registration(listener)
        self._registrations.append(registration)
        logging.debug(f'Sync notification listener registered ({len(self._registrations)} total).')

        def unsubscribe() -> None:
            try:
                self._registrations.remove(registration)
            except ValueError:
                return
            logging.debug(f'Sync notification listener removed ({len(self._registrations)} left).')

        return unsubscribe

    def publish(self, outcome: SyncOutcome) -> None:
        """Deliver outcome to every currently registered listener.

        A listener that raises is logged and skipped; the others still run.
        """
        # Listeners registered or removed during delivery only affect the next publish
        registrations = list(self._registrations)
        logging.debug(f'Publishing sync outcome to {len(registrations)} listener(s): {outcome}')

        for registration in registrations:
            try:
                registration.listener(outcome)
            except Exception:
                logging.exception('Sync notification listener failed.')

    def clear(self) -> None:
        """Drop every registration."""
        self._registrations.clear()
