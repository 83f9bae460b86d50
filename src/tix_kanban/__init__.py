"""
tix-kanban: a file-backed task board with an autonomous agent worker.

Subsystems:
- tasks/: task records, summary index, worker scheduler
- runs/: persisted dispatch attempts
- agents/: external agent subprocess runner
- personas/: prompt templates
- reports/: markdown reports
- github/: rate-limited queue in front of the GitHub worker process
"""

__version__ = "0.3.0"
