"""RecordKeeper - album identity reconciliation for shared music lists."""

__version__ = "0.1.0"
