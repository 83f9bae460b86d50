# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real tokens. Put them in .env (local, gitignored).

This file exists to make the repo self-documenting even without opening .env.example.
"""

ENV_VARS = {
    # App / logging
    "TIX_APP_NAME": "App display name in logs (default: tix-kanban).",
    "TIX_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    "TIX_CONSOLE_ENABLED": "Run the console REPL (true/false, default: true).",
    # Paths
    "TIX_DATA_DIR": "Root of all stored files (default: ~/.tix-kanban).",
    "TIX_TASKS_DIR": "Task records + _summary.json (default: <data_dir>/tasks).",
    "TIX_RUNS_DIR": "One JSON file per agent run (default: <data_dir>/runs).",
    "TIX_REPORTS_DIR": "Markdown reports (default: <data_dir>/reports).",
    "TIX_PERSONAS_DIR": "User persona files (default: <data_dir>/personas).",
    "TIX_PROJECT_PERSONAS_DIR": "Project persona files, win over user ones (default: ./personas).",
    "TIX_WORKER_STATE_PATH": "Persisted worker settings (default: <data_dir>/worker-settings.json).",
    # Worker scheduler (the state file, once written, takes precedence)
    "TIX_WORKER_ENABLED": "Timer-driven dispatch on/off (default: true).",
    "TIX_WORKER_INTERVAL": "5-field cron expression (default: */30 * * * *).",
    "TIX_WORKER_MAX_CONCURRENT": "Max agent runs in flight (default: 2).",
    # Agent
    "TIX_AGENT_COMMAND": "Agent command template, must contain {prompt} (default: claude --print {prompt}).",
    "TIX_AGENT_ASSIGNEES": "Comma/space separated assignees picked up by the worker (default: ai bot claude).",
    "TIX_DEFAULT_PERSONA": "Persona id used for runs (default: general-developer).",
    # GitHub worker process
    "TIX_GITHUB_ENABLED": "Start the GitHub worker process (default: false).",
    "TIX_GITHUB_TOKEN": "GitHub token (falls back to GITHUB_TOKEN).",
    "TIX_GITHUB_API_URL": "API base URL (default: https://api.github.com).",
    "TIX_GITHUB_REQUEST_TIMEOUT": "Seconds before a pending worker request is rejected (default: 60).",
    "TIX_GITHUB_QUEUE_DELAY": "Seconds between queued GitHub calls (default: 0.1).",
}
