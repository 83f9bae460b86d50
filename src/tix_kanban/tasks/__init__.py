"""Task records, the summary index and the worker scheduler."""
