"""sheet-tally: scheduling and capacity spreadsheet tally/compile pipeline."""

__version__ = "0.1.0"
