"""Command-line interface router for competency-engine."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

from competency_engine.catalog import (
    CatalogLoadError,
    RequirementsCatalog,
    dump_catalog_yaml,
    import_catalog_csv,
    load_catalog,
    requirements_to_dict,
)
from competency_engine.config import (
    ConfigLoadError,
    ConfigValidationError,
    dump_effective_config,
    load_config,
)
from competency_engine.constants import LEVELS, PROGRESS_COLUMNS
from competency_engine.domain import ids
from competency_engine.domain.models import FormType
from competency_engine.forms import FormService
from competency_engine.observability import setup_logging, shutdown_logging
from competency_engine.persistence import (
    EvidenceRepository,
    InMemoryStore,
    JsonFileStore,
    KeyValueStore,
    StoreError,
)
from competency_engine.progress import migrate_legacy_attestations
from competency_engine.ui.render import CLIRenderer, create_renderer

FORM_TYPE_CHOICES: Final[tuple[str, ...]] = tuple(item.value for item in FormType)


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="competency",
        description=(
            "competency-engine - trainee competency tracking.\n\n"
            "Common workflows:\n"
            "  competency catalog show 3 Oculoplastics  Show requirements for a form\n"
            "  competency forms list                  List stored forms\n"
            "  competency progress                    Show the progress matrix\n"
            "  competency config --json               Show the effective config\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to TOML config (default: ./competency.toml if present).",
    )
    common.add_argument(
        "--profile",
        default=None,
        help="Optional config profile overlay name.",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output and mirror logs to stderr.",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # catalog -------------------------------------------------------------
    catalog_parser = subparsers.add_parser(
        "catalog",
        help="Inspect or import the requirements catalog",
    )
    catalog_commands = catalog_parser.add_subparsers(dest="catalog_command", required=True)

    show_parser = catalog_commands.add_parser(
        "show",
        parents=[common],
        help="Show the requirements resolved for a level and specialty",
        description=(
            "Resolve the sections and criteria a form of the given type must address.\n\n"
            "Examples:\n"
            "  competency catalog show 1 'No attached SIA'\n"
            "  competency catalog show 3 'Cataract Surgery' --json\n"
            "  competency catalog show 2 Glaucoma --form-type 'EPA Operating List'\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    show_parser.add_argument("level", type=int, help="Training level (1-4)")
    show_parser.add_argument("specialty", help="Specialty name")
    show_parser.add_argument(
        "--form-type",
        choices=FORM_TYPE_CHOICES,
        default=FormType.EPA.value,
        help="Form type (default: EPA)",
    )
    show_parser.add_argument("--json", action="store_true", help="Emit deterministic JSON output")
    show_parser.set_defaults(handler=_cmd_catalog_show)

    specialties_parser = catalog_commands.add_parser(
        "specialties",
        parents=[common],
        help="List the specialties available per level",
        description=(
            "List the levels and specialties the catalog defines for a form type.\n\n"
            "Examples:\n"
            "  competency catalog specialties\n"
            "  competency catalog specialties --form-type GSAT --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    specialties_parser.add_argument(
        "--form-type",
        choices=FORM_TYPE_CHOICES,
        default=FormType.EPA.value,
        help="Form type (default: EPA)",
    )
    specialties_parser.add_argument(
        "--json", action="store_true", help="Emit deterministic JSON output"
    )
    specialties_parser.set_defaults(handler=_cmd_catalog_specialties)

    import_parser = catalog_commands.add_parser(
        "import",
        parents=[common],
        help="Convert a requirements spreadsheet export into catalog YAML",
        description=(
            "Group spreadsheet rows (CSV) into catalog entries and write YAML.\n\n"
            "Examples:\n"
            "  competency catalog import requirements.csv\n"
            "  competency catalog import gsat.csv --form-type GSAT --output gsat.yaml\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    import_parser.add_argument("csv_path", help="Path to the CSV export")
    import_parser.add_argument(
        "--form-type",
        choices=FORM_TYPE_CHOICES,
        default=FormType.EPA.value,
        help="Form type of the imported rows (default: EPA)",
    )
    import_parser.add_argument(
        "--output", default=None, help="Write YAML to this path instead of stdout"
    )
    import_parser.set_defaults(handler=_cmd_catalog_import)

    # forms ---------------------------------------------------------------
    forms_parser = subparsers.add_parser(
        "forms",
        help="Inspect stored forms",
    )
    forms_commands = forms_parser.add_subparsers(dest="forms_command", required=True)
    forms_list_parser = forms_commands.add_parser(
        "list",
        parents=[common],
        help="List stored forms with status and completeness",
        description=(
            "List every stored form, oldest first.\n\n"
            "Examples:\n"
            "  competency forms list\n"
            "  competency forms list --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    forms_list_parser.add_argument(
        "--json", action="store_true", help="Emit deterministic JSON output"
    )
    forms_list_parser.set_defaults(handler=_cmd_forms_list)

    # progress ------------------------------------------------------------
    progress_parser = subparsers.add_parser(
        "progress",
        parents=[common],
        help="Show the level x specialty progress matrix",
        description=(
            "Aggregate stored evidence into the progress matrix.\n\n"
            "Examples:\n"
            "  competency progress\n"
            "  competency progress --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    progress_parser.add_argument("--json", action="store_true", help="Emit deterministic JSON output")
    progress_parser.set_defaults(handler=_cmd_progress)

    # migrate-attestations ------------------------------------------------
    migrate_parser = subparsers.add_parser(
        "migrate-attestations",
        parents=[common],
        help="Convert legacy profile completion flags into attestation evidence",
        description=(
            "Read a legacy profile JSON document and create one attestation per true\n"
            "completion flag. Running it again creates nothing new.\n\n"
            "Examples:\n"
            "  competency migrate-attestations profile.json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    migrate_parser.add_argument("profile_path", help="Path to the legacy profile JSON")
    migrate_parser.add_argument("--json", action="store_true", help="Emit deterministic JSON output")
    migrate_parser.set_defaults(handler=_cmd_migrate_attestations)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show the effective configuration",
        description=(
            "Show the effective configuration after file, env, and profile layering.\n\n"
            "Examples:\n"
            "  competency config\n"
            "  competency config --profile testing --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    config_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


def main(argv: Sequence[str] | None = None) -> int:
    """Compatibility wrapper for main-module wiring."""

    return run_cli(argv)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_catalog_show(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    catalog = _load_catalog(config)
    form_type = FormType(args.form_type)
    with _logging_session(args, config):
        requirements = catalog.resolve(args.level, args.specialty, form_type)
    if requirements is None:
        raise CLIError(
            f"no {form_type.value} requirements for level {args.level} / {args.specialty!r}",
            exit_code=1,
        )

    if _flag(args, "json"):
        _emit_json({"command": "catalog show", "requirements": requirements_to_dict(requirements)})
        return 0

    _get_renderer(args).requirements(requirements)
    return 0


def _cmd_catalog_specialties(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    catalog = _load_catalog(config)
    form_type = FormType(args.form_type)
    levels = {
        str(level): list(catalog.specialties(level, form_type))
        for level in catalog.levels(form_type)
    }

    if _flag(args, "json"):
        _emit_json({"command": "catalog specialties", "form_type": form_type.value, "levels": levels})
        return 0

    renderer = _get_renderer(args)
    renderer.heading(f"{form_type.value} specialties")
    if not levels:
        renderer.text("(none)")
    for level, names in levels.items():
        renderer.section(f"Level {level}")
        renderer.items(names)
    return 0


def _cmd_catalog_import(args: argparse.Namespace) -> int:
    csv_path = Path(_require_str(args.csv_path, "csv_path")).expanduser()
    if not csv_path.is_file():
        raise CLIError(f"CSV file not found: {csv_path}", exit_code=2)
    try:
        imported = import_catalog_csv(csv_path, form_type=FormType(args.form_type))
    except ValueError as exc:
        raise CLIError(str(exc), exit_code=2) from exc

    output = _optional_str(getattr(args, "output", None))
    if output is None:
        sys.stdout.write(dump_catalog_yaml(imported))
        return 0

    dump_catalog_yaml(imported, output)
    _get_renderer(args).kv("Wrote", f"{output} ({len(imported.entries)} entries)")
    return 0


def _cmd_forms_list(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    catalog = _load_catalog(config)
    with _logging_session(args, config):
        service = FormService.from_config(catalog, _open_store(config), config)
        try:
            forms = service.list_forms()
        except StoreError as exc:
            raise CLIError(str(exc), exit_code=2) from exc

    rows = [
        {
            "id": form.id,
            "form_type": form.form_type.value,
            "level": form.level,
            "specialty": form.specialty,
            "status": form.status.value,
            "completeness": form.completeness(),
            "updated_at": form.updated_at.isoformat(),
        }
        for form in forms
    ]

    if _flag(args, "json"):
        _emit_json({"command": "forms list", "forms": rows})
        return 0

    renderer = _get_renderer(args)
    if not rows:
        renderer.text("No forms stored.")
        return 0
    renderer.table(
        ("ID", "Type", "Level", "Specialty", "Status", "Complete"),
        [
            (
                str(row["id"]),
                str(row["form_type"]),
                str(row["level"]),
                str(row["specialty"]),
                str(row["status"]),
                f"{row['completeness']}%",
            )
            for row in rows
        ],
    )
    return 0


def _cmd_progress(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    catalog = _load_catalog(config)
    with _logging_session(args, config):
        service = FormService.from_config(catalog, _open_store(config), config)
        try:
            matrix = service.compute_progress(levels=LEVELS, columns=PROGRESS_COLUMNS)
        except StoreError as exc:
            raise CLIError(str(exc), exit_code=2) from exc

    if _flag(args, "json"):
        _emit_json({"command": "progress", "progress": matrix.to_dict()})
        return 0

    renderer = _get_renderer(args)
    renderer.heading("Progress")
    renderer.progress_matrix(matrix)
    return 0


def _cmd_migrate_attestations(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    profile = _read_json_object(Path(_require_str(args.profile_path, "profile_path")))
    with _logging_session(args, config):
        repository = EvidenceRepository(_open_store(config))
        try:
            created = migrate_legacy_attestations(profile, repository)
        except StoreError as exc:
            raise CLIError(str(exc), exit_code=2) from exc

    if _flag(args, "json"):
        _emit_json(
            {
                "command": "migrate-attestations",
                "created": [item.to_dict() for item in created],
            }
        )
        return 0

    renderer = _get_renderer(args)
    renderer.kv("Attestations created", len(created))
    renderer.items([item.title for item in created])
    return 0


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    profile = _optional_str(getattr(args, "profile", None))

    payload: dict[str, object] = {
        "command": "config",
        "active_profile": profile,
        "config": config,
    }

    if _flag(args, "json"):
        _emit_json(payload)
        return 0

    renderer = _get_renderer(args)
    renderer.kv("Active profile", profile or "(default)")
    renderer.text(dump_effective_config(config))
    return 0


# ---------------------------------------------------------------------------
# Rendering helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    """Retrieve or create a CLI renderer from the parsed namespace."""

    no_color = _flag(args, "no_color")
    verbose = _flag(args, "verbose")
    return create_renderer(no_color=no_color, verbose=verbose)


# ---------------------------------------------------------------------------
# Helpers - config, storage, logging
# ---------------------------------------------------------------------------


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    config_path = _optional_str(getattr(args, "config_path", None))
    profile = _optional_str(getattr(args, "profile", None))

    try:
        return load_config(config_path, profile=profile)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _section(config: Mapping[str, object], name: str) -> Mapping[str, object]:
    section = config.get(name)
    return section if isinstance(section, Mapping) else {}


def _load_catalog(config: Mapping[str, object]) -> RequirementsCatalog:
    raw_path = _section(config, "catalog").get("path")
    path = raw_path.strip() if isinstance(raw_path, str) else ""
    try:
        return load_catalog(path or None)
    except CatalogLoadError as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _open_store(config: Mapping[str, object]) -> KeyValueStore:
    storage = _section(config, "storage")
    if storage.get("backend") == "memory":
        return InMemoryStore()
    raw_path = storage.get("path")
    if not isinstance(raw_path, str) or not raw_path.strip():
        raise CLIError("storage.path must be set for the json backend", exit_code=2)
    try:
        return JsonFileStore(raw_path)
    except StoreError as exc:
        raise CLIError(str(exc), exit_code=2) from exc


@contextmanager
def _logging_session(args: argparse.Namespace, config: Mapping[str, object]) -> Iterator[None]:
    handle = setup_logging(
        _section(config, "observability"),
        session_id=ids.generate_session_id(),
        log_to_stderr=_flag(args, "verbose"),
    )
    try:
        yield
    finally:
        shutdown_logging(handle)


def _read_json_object(path: Path) -> dict[str, object]:
    resolved = path.expanduser()
    try:
        payload = json.loads(resolved.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise CLIError(f"file not found: {resolved}", exit_code=2) from exc
    except json.JSONDecodeError as exc:
        raise CLIError(f"{resolved}: invalid JSON: {exc}", exit_code=2) from exc
    if not isinstance(payload, dict):
        raise CLIError(f"{resolved}: expected a JSON object", exit_code=2)
    return payload


def _require_str(value: object, name: str) -> str:
    if not isinstance(value, str):
        raise CLIError(f"invalid {name}: expected string", exit_code=2)
    cleaned = value.strip()
    if not cleaned:
        raise CLIError(f"invalid {name}: value cannot be empty", exit_code=2)
    return cleaned


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise CLIError("invalid optional string argument", exit_code=2)
    cleaned = value.strip()
    return cleaned or None


def _flag(args: argparse.Namespace, name: str) -> bool:
    value = getattr(args, name, False)
    return bool(value)


__all__ = [
    "CLIError",
    "build_parser",
    "main",
    "run_cli",
]


if __name__ == "__main__":
    raise SystemExit(run_cli())
