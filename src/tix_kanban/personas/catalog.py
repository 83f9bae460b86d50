# src/tix_kanban/personas/catalog.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

import yaml

from ..core.atomic_io import write_text_atomic

logger = logging.getLogger(__name__)

_FRONT_MATTER_DELIM = "---"


@dataclass(frozen=True, slots=True)
class Persona:
    id: str
    name: str
    emoji: str
    description: str
    prompt: str
    file_path: Path | None = None


def split_front_matter(text: str) -> tuple[dict[str, Any], str]:
    """
    Split "---\\n<yaml>\\n---\\n<body>" into (metadata, body).

    Text without a header is all body. Raises ValueError on a malformed header.
    """
    if not text.startswith(_FRONT_MATTER_DELIM):
        return {}, text

    lines = text.splitlines(keepends=True)
    for idx in range(1, len(lines)):
        if lines[idx].strip() == _FRONT_MATTER_DELIM:
            header = "".join(lines[1:idx])
            body = "".join(lines[idx + 1 :])
            try:
                meta = yaml.safe_load(header) or {}
            except yaml.YAMLError as exc:
                raise ValueError(f"invalid YAML front matter: {exc}") from exc
            if not isinstance(meta, dict):
                raise ValueError("front matter must be a mapping")
            return meta, body

    raise ValueError("unterminated front matter")


def render_front_matter(meta: dict[str, Any], body: str) -> str:
    header = yaml.safe_dump(meta, sort_keys=False, allow_unicode=True).strip()
    return f"{_FRONT_MATTER_DELIM}\n{header}\n{_FRONT_MATTER_DELIM}\n{body.rstrip()}\n"


DEFAULT_PERSONAS: Final[tuple[Persona, ...]] = (
    Persona(
        id="qa-engineer",
        name="QA Engineer",
        emoji="🧪",
        description="Focuses on testing, edge cases, and quality assurance",
        prompt="""You are a QA Engineer focused on quality and testing.

When reviewing tasks:
- Look for edge cases and potential bugs
- Suggest test scenarios and validation steps
- Focus on user experience and error handling
- Check for security vulnerabilities
- Ensure proper error messages and validation

Be thorough but practical in your suggestions.""",
    ),
    Persona(
        id="security-reviewer",
        name="Security Reviewer",
        emoji="🔒",
        description="Identifies security vulnerabilities and best practices",
        prompt="""You are a Security Reviewer focused on identifying and preventing security issues.

When reviewing tasks:
- Look for authentication and authorization issues
- Check for input validation and sanitization
- Identify potential injection vulnerabilities
- Review data exposure and privacy concerns
- Check for secure coding patterns

Be vigilant but provide actionable guidance.""",
    ),
    Persona(
        id="tech-writer",
        name="Tech Writer",
        emoji="📝",
        description="Creates clear documentation and user guides",
        prompt="""You are a Technical Writer focused on clear communication and documentation.

When working on tasks:
- Write clear, concise documentation
- Create step-by-step guides where appropriate
- Consider your audience (developers, users, etc.)
- Include examples and use cases

Make complex topics accessible and easy to understand.""",
    ),
    Persona(
        id="bug-fixer",
        name="Bug Fixer",
        emoji="🔧",
        description="Systematically identifies and fixes issues",
        prompt="""You are a Bug Fixer focused on systematically identifying and resolving issues.

When working on tasks:
- Reproduce the issue step by step
- Identify the root cause, not just symptoms
- Provide minimal, focused fixes
- Test your solution and consider side effects
- Document the fix and reasoning

Be methodical in your approach.""",
    ),
    Persona(
        id="general-developer",
        name="General Developer",
        emoji="💻",
        description="Handles general development tasks and features",
        prompt="""You are a General Developer focused on building features and maintaining code.

When working on tasks:
- Write clean, maintainable code
- Follow existing patterns and conventions
- Consider performance and scalability
- Test your implementation

Balance pragmatism with code quality.""",
    ),
)


class PersonaCatalog:
    """
    Markdown persona files: YAML header (name, emoji, description) + prompt body.

    Two directories are read: the user directory and the project directory.
    When both define the same id, the project file wins.
    """

    def __init__(self, user_dir: str | Path, project_dir: str | Path | None = None) -> None:
        self._user_dir = Path(user_dir)
        self._project_dir = Path(project_dir) if project_dir is not None else None
        self._user_dir.mkdir(parents=True, exist_ok=True)
        if self._project_dir is not None:
            self._project_dir.mkdir(parents=True, exist_ok=True)

    def _dirs(self) -> list[Path]:
        dirs = [self._user_dir]
        if self._project_dir is not None and self._project_dir != self._user_dir:
            dirs.append(self._project_dir)
        return dirs

    def seed_defaults(self) -> int:
        """Write built-in personas that are missing. Returns how many files were created."""
        target = self._project_dir or self._user_dir
        created = 0
        for persona in DEFAULT_PERSONAS:
            path = target / f"{persona.id}.md"
            if path.exists():
                continue
            meta = {"name": persona.name, "emoji": persona.emoji, "description": persona.description}
            write_text_atomic(path, render_front_matter(meta, persona.prompt))
            created += 1
        if created:
            logger.info("Seeded %d default personas into %s", created, target)
        return created

    @staticmethod
    def _load(path: Path) -> Persona:
        meta, body = split_front_matter(path.read_text("utf-8"))
        pid = path.stem
        return Persona(
            id=pid,
            name=str(meta.get("name") or pid),
            emoji=str(meta.get("emoji") or "🤖"),
            description=str(meta.get("description") or ""),
            prompt=body.strip(),
            file_path=path,
        )

    def list_personas(self) -> list[Persona]:
        found: dict[str, Persona] = {}
        for directory in self._dirs():
            try:
                files = sorted(directory.glob("*.md"))
            except OSError:
                logger.exception("Failed to read personas directory %s", directory)
                continue
            for path in files:
                try:
                    found[path.stem] = self._load(path)
                except (OSError, ValueError) as exc:
                    logger.warning("Skipping persona file %s: %s", path, exc)
        return sorted(found.values(), key=lambda p: p.name.lower())

    def get(self, persona_id: str) -> Persona | None:
        for persona in self.list_personas():
            if persona.id == persona_id:
                return persona
        return None
