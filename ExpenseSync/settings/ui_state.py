"""Device-local UI preferences.

These values persist across sessions but never take part in settings sync:
they are stored as the literal strings ``"true"`` / ``"false"``.
"""
import logging
from typing import Optional

from PySide6 import QtCore

from . import storage as storage_lib
from ..core.effects import run_effect


def _to_flag(value: Optional[str]) -> bool:
    return value == 'true'


def _from_flag(value: bool) -> str:
    return 'true' if value else 'false'


class UIStateStore(QtCore.QObject):
    """Expanded/collapsed state of the collapsible settings sections.

    Signals:
        paymentMethodExpandedChanged (bool)
        paymentInstrumentsExpandedChanged (bool)
    """
    paymentMethodExpandedChanged = QtCore.Signal(bool)
    paymentInstrumentsExpandedChanged = QtCore.Signal(bool)

    def __init__(self, storage: storage_lib.Storage, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.storage = storage
        self._payment_method_expanded: bool = False
        self._payment_instruments_expanded: bool = False

    @property
    def payment_method_expanded(self) -> bool:
        return self._payment_method_expanded

    @property
    def payment_instruments_expanded(self) -> bool:
        return self._payment_instruments_expanded

    def initialize(self) -> None:
        """Load both flags. Storage errors leave the sections collapsed."""
        try:
            payment_method = _to_flag(self.storage.get_item(storage_lib.PAYMENT_METHOD_EXPANDED_KEY))
            payment_instruments = _to_flag(self.storage.get_item(storage_lib.PAYMENT_INSTRUMENTS_EXPANDED_KEY))
        except Exception as ex:
            logging.warning(f'Failed to initialize UI state: {ex}')
            payment_method = payment_instruments = False

        self._payment_method_expanded = payment_method
        self._payment_instruments_expanded = payment_instruments
        self.paymentMethodExpandedChanged.emit(payment_method)
        self.paymentInstrumentsExpandedChanged.emit(payment_instruments)

    def set_payment_method_expanded(self, expanded: bool):
        self._payment_method_expanded = bool(expanded)
        self.paymentMethodExpandedChanged.emit(self._payment_method_expanded)
        return run_effect(
            self.storage.set_item, storage_lib.PAYMENT_METHOD_EXPANDED_KEY, _from_flag(expanded)
        )

    def set_payment_instruments_expanded(self, expanded: bool):
        self._payment_instruments_expanded = bool(expanded)
        self.paymentInstrumentsExpandedChanged.emit(self._payment_instruments_expanded)
        return run_effect(
            self.storage.set_item, storage_lib.PAYMENT_INSTRUMENTS_EXPANDED_KEY, _from_flag(expanded)
        )
