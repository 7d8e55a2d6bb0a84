"""
UI-facing glue for ExpenseSync.

- :mod:`ExpenseSync.ui.actions` – Application-wide Qt signals shared by stores and views.
"""
