"""Command-line interface wiring for the photo adjustment renderer."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import yaml
from tqdm import tqdm

from .adjustments import PARAMETER_NAMES, AdjustmentParameters
from .assets import DirectoryAssetStore, StagedWrite
from .errors import RenderError
from .geometry import GeometrySpec, NormalizedRect
from .renderer import Renderer

LOGGER = logging.getLogger("luma_renderer")

COMMANDS = ("preview", "export")


def _load_config_data(path: Path) -> Mapping[str, Any]:
    """Load a mapping from a JSON or YAML file.

    Args:
        path: Path to the file (.json, .yaml, or .yml).

    Returns:
        Dictionary mapping keys to values; an empty file yields ``{}``.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If the content is unparseable or not a mapping.
    """
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    suffix = path.suffix.lower()
    try:
        if suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(path.read_text())
        else:
            data = json.loads(path.read_text())
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ValueError(f"Unable to parse configuration file {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValueError(f"Configuration file {path} must contain a mapping of option names to values")
    return data


def _normalise_config_keys(raw: Mapping[str, Any]) -> Dict[str, Any]:
    normalised: Dict[str, Any] = {}
    for key, value in raw.items():
        if not isinstance(key, str):
            raise ValueError("Configuration keys must be strings")
        normalised[key.replace("-", "_")] = value
    return normalised


def _build_parser_aliases(
    parser: argparse.ArgumentParser,
) -> Tuple[Dict[str, argparse.Action], Dict[str, str]]:
    """Map every option spelling of *parser* to its action.

    Returns:
        Tuple of (dest_to_action, alias_to_dest) dictionaries for resolving
        configuration file keys to parser actions.
    """
    dest_to_action: Dict[str, argparse.Action] = {}
    alias_to_dest: Dict[str, str] = {}
    for action in parser._actions:
        if not action.option_strings or action.dest in {argparse.SUPPRESS, "help", "config"}:
            continue
        dest_to_action[action.dest] = action
        alias_to_dest[action.dest] = action.dest
        for option_string in action.option_strings:
            alias_to_dest[option_string.lstrip("-").replace("-", "_")] = action.dest
    return dest_to_action, alias_to_dest


def _coerce_bool(value: Any, *, source: Path, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"Invalid boolean for '{key}' in {source}: expected true/false value, got {value!r}")


def _coerce_config_value(action: argparse.Action, value: Any, *, source: Path, key: str) -> Any:
    """Convert configuration values so they match argparse expectations."""

    if value is None:
        return None

    if isinstance(action, (argparse._StoreTrueAction, argparse._StoreFalseAction)):
        return _coerce_bool(value, source=source, key=key)

    if isinstance(action, argparse._AppendAction):
        items = value if isinstance(value, list) else [value]
        if action.type is None:
            return [str(item) for item in items]
        return [action.type(item) for item in items]

    if action.type is not None:
        try:
            converted = action.type(value)
        except (TypeError, ValueError, argparse.ArgumentTypeError) as exc:
            raise ValueError(f"Invalid value for '{key}' in {source}: {exc}") from exc
    else:
        converted = value

    if action.choices is not None and converted not in action.choices:
        raise ValueError(
            f"Invalid value for '{key}' in {source}: {converted!r} (choose from {sorted(action.choices)})"
        )

    return converted


def _parse_rect(text: str) -> NormalizedRect:
    parts = [part.strip() for part in str(text).split(",")]
    if len(parts) != 4:
        raise argparse.ArgumentTypeError(f"expected x,y,w,h but got {text!r}")
    try:
        x, y, w, h = (float(part) for part in parts)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid rect {text!r}: {exc}") from exc
    return NormalizedRect(x, y, w, h)


def _parse_override(text: str) -> Tuple[str, float]:
    name, sep, raw = str(text).partition("=")
    name = name.strip().replace("-", "_")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"expected name=value but got {text!r}")
    if name not in PARAMETER_NAMES:
        raise argparse.ArgumentTypeError(f"unknown adjustment {name!r} (choose from {', '.join(PARAMETER_NAMES)})")
    try:
        return name, float(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid value for {name}: {raw!r}") from exc


def _positive_int(text: Any) -> int:
    value = int(text)
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {value}")
    return value


def _common_options() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional configuration file (JSON, or YAML for .yaml/.yml) providing option defaults",
    )
    common.add_argument("root", type=Path, help="Folder that acts as the asset library")
    common.add_argument(
        "--params",
        type=Path,
        default=None,
        help="JSON/YAML file with adjustment values keyed by parameter name",
    )
    common.add_argument(
        "--set",
        dest="overrides",
        action="append",
        type=_parse_override,
        default=None,
        metavar="NAME=VALUE",
        help="Override one adjustment value; may be repeated",
    )
    common.add_argument("--quality", type=float, default=None, help="Encoder quality in [0, 1]; tier default when omitted")
    common.add_argument("--aspect", type=float, default=None, help="Centered crop to this width/height ratio")
    common.add_argument("--rect", type=_parse_rect, default=None, metavar="X,Y,W,H", help="Normalized crop rectangle")
    common.add_argument("--rotation-turns", type=int, default=0, help="Clockwise quarter turns")
    common.add_argument("--straighten", type=float, default=0.0, help="Straighten angle in degrees")
    common.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity",
    )
    return common


def build_parser() -> Tuple[argparse.ArgumentParser, Dict[str, argparse.ArgumentParser]]:
    parser = argparse.ArgumentParser(
        prog="luma-render",
        description="Render adjusted previews and full-resolution exports of library photos.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    common = _common_options()

    preview = subparsers.add_parser(
        "preview",
        parents=[common],
        help="Render one bounded-size preview",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    preview.add_argument("asset", help="Asset reference relative to the library root")
    preview.add_argument("--max-side", type=_positive_int, required=True, help="Longest side of the preview in pixels")
    preview.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Destination JPEG. Defaults to '<asset>_preview.jpg' in the current directory.",
    )

    export = subparsers.add_parser(
        "export",
        parents=[common],
        help="Render full-resolution exports into the library's export folder",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    export.add_argument("assets", nargs="+", help="Asset references relative to the library root")
    export.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Folder receiving exports. Defaults to '<root>/exports'.",
    )
    export.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable progress reporting (useful for minimal or non-interactive environments)",
    )
    return parser, {"preview": preview, "export": export}


def _apply_config_defaults(subparser: argparse.ArgumentParser, config: Path) -> None:
    raw_config = _load_config_data(config)
    normalised_config = _normalise_config_keys(raw_config)
    dest_to_action, alias_to_dest = _build_parser_aliases(subparser)

    converted_defaults: Dict[str, Any] = {}
    for key, value in normalised_config.items():
        dest = alias_to_dest.get(key)
        if dest is None:
            raise ValueError(f"Unknown configuration option '{key}' in {config}")
        converted_defaults[dest] = _coerce_config_value(dest_to_action[dest], value, source=config, key=key)

    for dest in converted_defaults:
        # A default satisfies a required option once the config supplies it.
        dest_to_action[dest].required = False
    subparser.set_defaults(**converted_defaults)


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser, subparsers = build_parser()
    argv_list = list(argv) if argv is not None else sys.argv[1:]

    # Probe for --config alone so options it supplies may be omitted on the command line.
    probe = argparse.ArgumentParser(add_help=False)
    probe.add_argument("--config", type=Path, default=None)
    config_probe, _ = probe.parse_known_args(argv_list)
    command = argv_list[0] if argv_list else None
    if config_probe.config is not None and command in COMMANDS:
        subparser = subparsers[command]
        try:
            _apply_config_defaults(subparser, config_probe.config)
        except (OSError, ValueError, argparse.ArgumentTypeError) as exc:
            subparser.error(str(exc))

    args = parser.parse_args(argv_list)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s: %(message)s")
    return args


def build_parameters(args: argparse.Namespace) -> AdjustmentParameters:
    """Combine the ``--params`` file with ``--set`` overrides."""

    values: Dict[str, Any] = {}
    if args.params is not None:
        values.update(_load_config_data(args.params))
    for name, value in args.overrides or []:
        values[name] = value
    parameters = AdjustmentParameters.from_mapping(values)
    LOGGER.debug("Using adjustments: %s", parameters.to_mapping())
    return parameters


def build_geometry(args: argparse.Namespace) -> Optional[GeometrySpec]:
    geometry = GeometrySpec(
        aspect=args.aspect,
        rect=args.rect,
        rotation_turns=args.rotation_turns,
        straighten_degrees=args.straighten,
    )
    return None if geometry.is_identity else geometry


def default_preview_path(asset: str) -> Path:
    return Path.cwd() / f"{Path(asset).stem}_preview.jpg"


def run_preview(args: argparse.Namespace) -> int:
    store = DirectoryAssetStore(args.root, allow_writes=False)
    renderer = Renderer(store)
    data = renderer.render_preview(
        args.asset,
        build_parameters(args),
        build_geometry(args),
        max_side=args.max_side,
        quality=args.quality,
    )
    destination = args.output if args.output is not None else default_preview_path(args.asset)
    with StagedWrite(destination) as staged:
        staged.write_bytes(data)
    LOGGER.info("Preview of %s written to %s", args.asset, destination)
    return 0


def run_export(args: argparse.Namespace) -> int:
    store = DirectoryAssetStore(args.root, args.output_dir)
    renderer = Renderer(store)
    parameters = build_parameters(args)
    geometry = build_geometry(args)

    assets: List[str] = list(args.assets)
    progress = tqdm(assets, total=len(assets), desc="Exporting", unit="img", disable=args.no_progress)
    failures = 0
    for asset in progress:
        try:
            renderer.export_full_res(asset, parameters, geometry, quality=args.quality)
        except RenderError as exc:
            failures += 1
            LOGGER.error("Export of %s failed [%s]: %s", asset, exc.code, exc)
    LOGGER.info("Exported %s of %s asset(s)", len(assets) - failures, len(assets))
    return 1 if failures else 0


def run(args: argparse.Namespace) -> int:
    """Run the selected subcommand and return the process exit status."""

    try:
        if args.command == "preview":
            return run_preview(args)
        return run_export(args)
    except RenderError as exc:
        LOGGER.error("%s failed [%s]: %s", args.command, exc.code, exc)
        return 1


def main(argv: Optional[Iterable[str]] = None) -> int:
    args = parse_args(argv)
    return run(args)


__all__ = [
    "build_geometry",
    "build_parameters",
    "build_parser",
    "main",
    "parse_args",
    "run",
]
