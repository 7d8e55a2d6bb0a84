"""Local expense ledger and its pending-change counters.

Expenses live in a :class:`pandas.DataFrame`. Deletions are soft: the row keeps
its data and gets a ``deleted_at`` timestamp so the next sync can propagate the
removal. Every create, update and delete bumps the matching
:class:`~ExpenseSync.core.pending.PendingChanges` counter; only a successful
sync lowers them again, and only by the amount it covered.

The ledger and the counters are written to storage as deferred effects.
"""
import json
import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd
from PySide6 import QtCore

from .effects import run_effect
from .pending import PendingChanges
from ..settings import storage as storage_lib
from ..settings.lib import PAYMENT_METHODS, now_str
from ..status import status

EXPENSE_COLUMNS: List[str] = [
    'id',
    'date',
    'amount',
    'category',
    'note',
    'payment_method',
    'created_at',
    'updated_at',
    'deleted_at',
]
REQUIRED_COLUMNS: List[str] = ['date', 'amount', 'category']
EDITABLE_COLUMNS: List[str] = ['date', 'amount', 'category', 'note', 'payment_method']


def empty_frame() -> pd.DataFrame:
    """Return an empty ledger with the expected columns."""
    return pd.DataFrame(columns=EXPENSE_COLUMNS)


def _normalize(values: Dict[str, Any]) -> Dict[str, Any]:
    """Trim and type-check editable expense values.

    Raises:
        status.ExpenseInvalidException: If a value cannot be used.
    """
    unknown = set(values) - set(EDITABLE_COLUMNS)
    if unknown:
        raise status.ExpenseInvalidException(f'Unknown expense fields: {sorted(unknown)}')

    data = dict(values)
    if 'amount' in data:
        try:
            data['amount'] = float(data['amount'])
        except (TypeError, ValueError) as ex:
            raise status.ExpenseInvalidException(f'Amount "{data["amount"]}" is not a number.') from ex
    if 'category' in data:
        data['category'] = str(data['category']).strip()
        if not data['category']:
            raise status.ExpenseInvalidException('Category is required.')
    if 'date' in data:
        try:
            timestamp = pd.Timestamp(data['date'])
        except (TypeError, ValueError) as ex:
            raise status.ExpenseInvalidException(f'Date "{data["date"]}" is not a valid date.') from ex
        if pd.isna(timestamp):
            raise status.ExpenseInvalidException('Date is required.')
        data['date'] = timestamp.isoformat()
    if 'note' in data:
        data['note'] = '' if data['note'] is None else str(data['note']).strip()
    if data.get('payment_method') is not None and data['payment_method'] not in PAYMENT_METHODS:
        raise status.ExpenseInvalidException(
            f'Payment method must be one of {PAYMENT_METHODS}, got "{data["payment_method"]}".'
        )
    return data


class ExpenseStore(QtCore.QObject):
    """Owner of the expense ledger and of the pending-change counters.

    Signals:
        expensesChanged (): Emitted after any change to the ledger.
        expenseMutated (str): Emitted with "added", "edited" or "deleted" after a user edit.
        pendingChangesChanged (object): Emitted with the new PendingChanges.
    """
    expensesChanged = QtCore.Signal()
    expenseMutated = QtCore.Signal(str)
    pendingChangesChanged = QtCore.Signal(object)

    def __init__(self, storage: storage_lib.Storage, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.storage = storage
        self._df: pd.DataFrame = empty_frame()
        self._pending: PendingChanges = PendingChanges()
        self._is_loading: bool = True

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def pending_changes(self) -> PendingChanges:
        return self._pending

    @property
    def expenses(self) -> pd.DataFrame:
        """All expenses, soft-deleted ones included. Returns a copy."""
        return self._df.copy()

    def active_expenses(self) -> pd.DataFrame:
        """Expenses that are not soft-deleted, newest date first."""
        df = self._df[self._df['deleted_at'].isna()]
        return df.sort_values('date', ascending=False, kind='stable').reset_index(drop=True)

    def get_expense(self, expense_id: str) -> Dict[str, Any]:
        rows = self._df[self._df['id'] == expense_id]
        if rows.empty:
            raise status.ExpenseNotFoundException(f'No expense with id "{expense_id}".')
        return rows.iloc[0].to_dict()

    def initialize(self) -> None:
        """Load the ledger and the counters from storage.

        A malformed stored ledger is logged and replaced by an empty one.
        """
        try:
            df = self._read_expenses()
            pending = self._read_pending()
        except Exception as ex:
            logging.warning(f'Failed to initialize the expense store: {ex}')
            df, pending = empty_frame(), PendingChanges()

        self._df = df
        self._is_loading = False
        self.expensesChanged.emit()
        self._set_pending(pending, persist=False)

    def _read_expenses(self) -> pd.DataFrame:
        stored = self.storage.get_item(storage_lib.EXPENSES_KEY)
        if not stored:
            return empty_frame()
        records = json.loads(stored)
        df = pd.DataFrame.from_records(records, columns=EXPENSE_COLUMNS)
        df = df.astype(object).where(df.notna(), None)
        logging.debug(f'Loaded {len(df)} expense(s) from storage.')
        return df

    def _read_pending(self) -> PendingChanges:
        stored = self.storage.get_item(storage_lib.PENDING_CHANGES_KEY)
        if not stored:
            return PendingChanges()
        data = json.loads(stored)
        return PendingChanges(
            added=int(data.get('added', 0)),
            edited=int(data.get('edited', 0)),
            deleted=int(data.get('deleted', 0)),
        )

    def _write(self, records: List[Dict[str, Any]], pending: PendingChanges) -> None:
        self.storage.set_item(storage_lib.EXPENSES_KEY, json.dumps(records, ensure_ascii=False))
        self.storage.set_item(storage_lib.PENDING_CHANGES_KEY, json.dumps({
            'added': pending.added,
            'edited': pending.edited,
            'deleted': pending.deleted,
        }))

    def records(self) -> List[Dict[str, Any]]:
        """The ledger as JSON-ready records, soft-deleted rows included."""
        df = self._df.astype(object).where(self._df.notna(), None)
        return df.to_dict(orient='records')

    def _persist(self):
        return run_effect(self._write, self.records(), self._pending)

    def _set_pending(self, pending: PendingChanges, persist: bool = True):
        self._pending = pending
        self.pendingChangesChanged.emit(pending)
        if persist:
            return self._persist()
        return None

    def _bump(self, added: int = 0, edited: int = 0, deleted: int = 0):
        return self._set_pending(PendingChanges(
            added=self._pending.added + added,
            edited=self._pending.edited + edited,
            deleted=self._pending.deleted + deleted,
        ))

    def add_expense(self, **values: Any) -> str:
        """Add an expense.

        Args:
            **values: date, amount, category and optionally note and payment_method.

        Returns:
            str: The id of the new expense.
        """
        data = _normalize(values)
        missing = [k for k in REQUIRED_COLUMNS if k not in data]
        if missing:
            raise status.ExpenseInvalidException(f'Missing expense fields: {missing}')

        timestamp = now_str()
        row = {k: None for k in EXPENSE_COLUMNS}
        row.update({'note': '', 'payment_method': None})
        row.update(data)
        row.update({
            'id': uuid.uuid4().hex,
            'created_at': timestamp,
            'updated_at': timestamp,
        })

        new_row = pd.DataFrame([row], columns=EXPENSE_COLUMNS, dtype=object)
        self._df = new_row if self._df.empty else pd.concat([new_row, self._df], ignore_index=True)
        logging.debug(f'Expense added: {row["id"]}')

        self.expensesChanged.emit()
        self._bump(added=1)
        self.expenseMutated.emit('added')
        return row['id']

    def edit_expense(self, expense_id: str, **values: Any) -> None:
        """Update the editable fields of an active expense."""
        data = _normalize(values)
        mask = (self._df['id'] == expense_id) & self._df['deleted_at'].isna()
        if not mask.any():
            raise status.ExpenseNotFoundException(f'No active expense with id "{expense_id}".')

        df = self._df.copy()
        for column, value in data.items():
            df.loc[mask, column] = value
        df.loc[mask, 'updated_at'] = now_str()
        self._df = df
        logging.debug(f'Expense edited: {expense_id} {sorted(data)}')

        self.expensesChanged.emit()
        self._bump(edited=1)
        self.expenseMutated.emit('edited')

    def delete_expense(self, expense_id: str) -> None:
        """Soft-delete an expense."""
        mask = (self._df['id'] == expense_id) & self._df['deleted_at'].isna()
        if not mask.any():
            raise status.ExpenseNotFoundException(f'No active expense with id "{expense_id}".')

        timestamp = now_str()
        df = self._df.copy()
        df.loc[mask, 'deleted_at'] = timestamp
        df.loc[mask, 'updated_at'] = timestamp
        self._df = df
        logging.debug(f'Expense deleted: {expense_id}')

        self.expensesChanged.emit()
        self._bump(deleted=1)
        self.expenseMutated.emit('deleted')

    def replace_expenses(self, records: Iterable[Dict[str, Any]]):
        """Replace the whole ledger, e.g. with the merged result of a sync.

        Counters are left untouched.
        """
        df = pd.DataFrame.from_records(list(records), columns=EXPENSE_COLUMNS)
        self._df = df.astype(object).where(df.notna(), None) if not df.empty else empty_frame()
        logging.debug(f'Expenses replaced: {len(self._df)} row(s).')

        self.expensesChanged.emit()
        return self._persist()

    def clear_pending_changes(self, covered: Optional[PendingChanges] = None):
        """Lower the counters after a successful sync.

        Args:
            covered: The counters captured when the sync started. Changes made
                while the sync ran stay pending. None clears everything.
        """
        pending = PendingChanges() if covered is None else self._pending - covered
        logging.debug(f'Pending changes after sync: {pending}')
        return self._set_pending(pending)
