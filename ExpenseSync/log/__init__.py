"""
Logging subsystem for ExpenseSync.

Modules:

- :mod:`ExpenseSync.log.log` – Root logger setup, the in-memory log tank and the Qt message bridge.
"""
