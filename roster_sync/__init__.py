"""Reconcile attendance and grade records into a master roster workbook."""

__version__ = "0.3.0"
