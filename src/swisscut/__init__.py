"""swisscut - Swiss pairing, top-cut bracket and standings engine."""

__version__ = "0.1.0"
