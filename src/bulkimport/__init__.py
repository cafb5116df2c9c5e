"""
bulkimport: bulk CSV import engine.

Splits large delimited files into bunches, runs every row through a chain
of observers and coordinates run status across concurrent workers.
"""

__version__ = "0.1.0"
