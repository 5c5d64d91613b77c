"""Tabular data package.

Module scope:
- `csv_parser`: tabular parsing port (pandas) and schema inference.
- `tabular`: chart descriptor construction and narrative analysis.
"""
