"""GitHub access: rate-limited request queue, worker-process client and the worker itself."""
