"""Row consumers receiving processed rows."""

from bulkimport.writers.base import RowConsumer
from bulkimport.writers.csv_writer import BunchCsvWriter

__all__ = ["BunchCsvWriter", "RowConsumer"]
