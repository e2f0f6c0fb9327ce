"""Spreadsheet reconciliation engine: locate sheets, headers, columns and rows, then write."""
