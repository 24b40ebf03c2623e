"""UI package exports for the CLI router and rich rendering."""

from competency_engine.ui.cli import CLIError, build_parser, main, run_cli
from competency_engine.ui.render import CLIRenderer, create_renderer

__all__ = [
    "CLIError",
    "CLIRenderer",
    "build_parser",
    "create_renderer",
    "main",
    "run_cli",
]
