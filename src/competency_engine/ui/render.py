"""Output rendering for the competency CLI.

File: src/competency_engine/ui/render.py

Purpose
- Provide a thin rendering layer for CLI output on top of ``rich``.
- Respect the NO_COLOR environment variable and the --no-color CLI flag.

What should be included in this file
- CLIRenderer class with methods for common output patterns.
- Progress-matrix and requirements views.
- Factory function to create a renderer with appropriate settings.

Functional requirements
- Output stays readable when stdout is not a terminal (no escape codes).
"""

from __future__ import annotations

import os
from typing import IO, TYPE_CHECKING, Final

from rich.console import Console
from rich.table import Table
from rich.text import Text

from competency_engine.domain.models import ProgressStatus, SpecialtyRequirements

if TYPE_CHECKING:
    from collections.abc import Sequence

    from competency_engine.progress.aggregator import ProgressMatrix

_STATUS_GLYPHS: Final[dict[ProgressStatus, tuple[str, str]]] = {
    ProgressStatus.SIGNED_OFF: ("✔", "bold green"),
    ProgressStatus.SUBMITTED: ("◐", "yellow"),
    ProgressStatus.DRAFT: ("○", "cyan"),
    ProgressStatus.NOT_STARTED: ("·", "dim"),
}


def _color_allowed(no_color_flag: bool) -> bool:
    if no_color_flag:
        return False
    return not os.environ.get("NO_COLOR", "")


class CLIRenderer:
    """Thin CLI output renderer.

    Plain, deterministic text when stdout is redirected; colour on terminals
    unless ``NO_COLOR`` or ``--no-color`` says otherwise.
    """

    def __init__(
        self,
        *,
        no_color: bool = False,
        verbose: bool = False,
        file: IO[str] | None = None,
    ) -> None:
        self.verbose = verbose
        self._console = Console(
            file=file,
            no_color=not _color_allowed(no_color),
            highlight=False,
            soft_wrap=True,
        )

    @property
    def console(self) -> Console:
        return self._console

    def heading(self, text: str) -> None:
        self._console.print(Text(text, style="bold"))

    def kv(self, key: str, value: object) -> None:
        line = Text(f"{key}: ", style="bold")
        line.append(str(value))
        self._console.print(line)

    def text(self, line: str) -> None:
        self._console.print(Text(line))

    def section(self, title: str) -> None:
        self._console.print()
        self._console.print(Text(title, style="bold underline"))

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self._console.print(Text(f"  {prefix}{entry}"))

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        *,
        title: str | None = None,
    ) -> None:
        if not rows:
            return
        table = Table(title=title, show_edge=False, header_style="bold")
        for header in headers:
            table.add_column(header)
        for row in rows:
            table.add_row(*(str(cell) for cell in row))
        self._console.print(table)

    def requirements(self, requirements: SpecialtyRequirements) -> None:
        """Sections and criteria with their requirement keys (keys only when verbose)."""
        self.heading(
            f"{requirements.form_type.value} Level {requirements.level} - {requirements.specialty}"
        )
        if requirements.learning_outcomes:
            self.section("Learning outcomes")
            self.items(list(requirements.learning_outcomes))
        for section in requirements.sections:
            flags = [
                name
                for name, enabled in (
                    ("blurb", section.has_blurb),
                    ("comment always shown", section.always_show_comment),
                )
                if enabled
            ]
            suffix = f" [{', '.join(flags)}]" if flags else ""
            self.section(f"{section.letter}. {section.title}{suffix}")
            for position, criterion in enumerate(section.criteria, start=1):
                label = f"{position}. {criterion.label}"
                if self.verbose:
                    label = f"{label}  ({criterion.key.format()})"
                self._console.print(Text(f"  {label}"))

    def progress_matrix(self, matrix: ProgressMatrix) -> None:
        table = Table(show_edge=False, header_style="bold")
        table.add_column("Level")
        for column in matrix.columns:
            table.add_column(column, justify="center")
        for level in matrix.levels:
            cells: list[Text] = [Text(f"L{level}")]
            for cell in matrix.row(level):
                glyph, style = _STATUS_GLYPHS[cell.status]
                cells.append(Text(f"{glyph}*" if cell.attested else glyph, style=style))
            table.add_row(*cells)
        self._console.print(table)
        legend = "  ".join(
            f"{glyph} {status.value}" for status, (glyph, _) in _STATUS_GLYPHS.items()
        )
        self._console.print(Text(f"{legend}  * attested", style="dim"))


def create_renderer(*, no_color: bool = False, verbose: bool = False) -> CLIRenderer:
    return CLIRenderer(no_color=no_color, verbose=verbose)


__all__ = ["CLIRenderer", "create_renderer"]
