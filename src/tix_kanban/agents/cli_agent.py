# src/tix_kanban/agents/cli_agent.py

"""Subprocess runner for CLI agents (claude --print, etc.)."""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import shlex
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from ..core.errors import ProcessFailureError

logger = logging.getLogger(__name__)

DEFAULT_COMMAND_TEMPLATE = "claude --print {prompt}"
_CHUNK_SIZE = 4096


@dataclass(frozen=True, slots=True)
class AgentResult:
    exit_code: int | None
    stdout: str
    stderr: str

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


def build_argv(command_template: str, prompt: str) -> list[str]:
    """
    Split the template with shlex, then substitute {prompt} inside each argv element.

    The prompt always lands in a single argv element; no shell is involved.
    """
    stripped = command_template.strip()
    if not stripped:
        raise ProcessFailureError("Agent command template is empty.")
    if "{prompt}" not in stripped:
        raise ProcessFailureError("Agent command template must include {prompt}.")

    try:
        parts = shlex.split(stripped)
    except ValueError as error:
        raise ProcessFailureError(f"Agent command template is malformed: {error}") from error

    return [part.replace("{prompt}", prompt) for part in parts]


async def _pump(stream: asyncio.StreamReader | None, sink: list[str]) -> None:
    if stream is None:
        return
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while True:
        chunk = await stream.read(_CHUNK_SIZE)
        if not chunk:
            break
        sink.append(decoder.decode(chunk))
    tail = decoder.decode(b"", final=True)
    if tail:
        sink.append(tail)


class CliAgentRunner:
    """
    Launch the agent with the prompt as its only input and wait for it to exit.

    stdout and stderr are drained concurrently while the process runs. There is
    no timeout: an agent may run for as long as it needs.
    """

    def __init__(
        self,
        command_template: str = DEFAULT_COMMAND_TEMPLATE,
        *,
        env: Mapping[str, str] | None = None,
        cwd: str | Path | None = None,
    ) -> None:
        self.command_template = command_template
        self._env = dict(env) if env is not None else None
        self._cwd = str(cwd) if cwd is not None else None

    async def run(self, prompt: str) -> AgentResult:
        argv = build_argv(self.command_template, prompt)

        env = os.environ.copy()
        if self._env:
            env.update(self._env)

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                cwd=self._cwd,
            )
        except FileNotFoundError as error:
            raise ProcessFailureError(f"Agent command not found: {argv[0]}") from error
        except OSError as error:
            raise ProcessFailureError(f"Agent failed to start: {error}") from error

        logger.debug("Agent started pid=%s cmd=%s", proc.pid, argv[0])

        out: list[str] = []
        err: list[str] = []
        await asyncio.gather(_pump(proc.stdout, out), _pump(proc.stderr, err))
        exit_code = await proc.wait()

        logger.debug("Agent exited pid=%s code=%s", proc.pid, exit_code)
        return AgentResult(exit_code=exit_code, stdout="".join(out), stderr="".join(err))
