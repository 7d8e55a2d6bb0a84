"""
Core sync services.

Modules:

- :mod:`ExpenseSync.core.machine` – The sync state machine and its transport worker.
- :mod:`ExpenseSync.core.pending` – Pending-change counters and the sync button label.
- :mod:`ExpenseSync.core.emitter` – Publish/subscribe channel for sync outcomes.
- :mod:`ExpenseSync.core.notifications` – The bounded notification queue and its expiry timers.
- :mod:`ExpenseSync.core.expenses` – The local expense ledger.
- :mod:`ExpenseSync.core.autosync` – Automatic sync policy.
- :mod:`ExpenseSync.core.effects` – Deferred storage writes.
- :mod:`ExpenseSync.core.provider` – Composition root for the shared stores.
"""
