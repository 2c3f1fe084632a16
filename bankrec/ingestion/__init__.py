"""Ingestion module for importing statement transaction batches."""

from .csv_reader import read_csv_batch
from .importer import TransactionImporter
from .row_parser import ParsedRow, RowError, RowParser

__all__ = ["TransactionImporter", "RowParser", "ParsedRow", "RowError", "read_csv_batch"]
