"""papersort: sort scanned exam papers into subject buckets."""

__version__ = "0.1.0"
