from __future__ import annotations

import argparse
import json
import os
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from .util.errors import ConfigError

# --------
# Defaults
# --------
DEFAULT_CONFIG_FILE = "terraview.yaml"
DEFAULT_GROUPING_ELEMENTS: Tuple[str, ...] = (
    "azurerm_resource_group",
    "azurerm_virtual_network",
    "azurerm_subnet",
    "aws_vpc",
    "aws_subnet",
    "google_compute_network",
    "google_compute_subnetwork",
)
DEFAULT_KNOWN_PROVIDERS: Tuple[str, ...] = ("azurerm", "aws", "google", "gcp")
DEFAULT_ICON_PATH = "icons"
DEFAULT_OUTPUT = "./diagram"
DEFAULT_FORMAT = "png"
DEFAULT_DPI = 96
DEFAULT_BASE_MARGIN = 8
DEFAULT_NODE_FONTSIZE = 10
DEFAULT_CLUSTER_FONTSIZE = 12
DEFAULT_LABEL_LOCATION = "b"

LABEL_LOCATIONS = {"t", "c", "b"}
OUTPUT_FORMATS = ("png", "jpg", "svg", "pdf", "dot")
RECONCILE_MODES = {"prune", "keep"}

ALLOWED_CONFIG_KEYS = {
    "grouping_elements",
    "important_attributes",
    "known_providers",
    "label_location",
    "base_margin",
    "node_fontsize",
    "cluster_fontsize",
    "icon_path",
    "strict",
    "reconcile_mismatched",
    "keep_all_nodes",
    "format",
    "output",
    "dpi",
    "state",
    "graph_file",
    "log_level",
    "json_logs",
    "progress",
}
BOOL_CONFIG_KEYS = {"strict", "keep_all_nodes", "json_logs", "progress"}
INT_CONFIG_KEYS = {"base_margin", "node_fontsize", "cluster_fontsize", "dpi"}
PATH_CONFIG_KEYS = {"state", "graph_file", "icon_path"}
STR_CONFIG_KEYS = {"label_location", "reconcile_mismatched", "format", "output", "log_level"}
LIST_CONFIG_KEYS = {"grouping_elements", "known_providers"}


@dataclass(frozen=True)
class ViewConfig:
    # Input
    path: Path = Path(".")
    state: Optional[Path] = None
    graph_file: Optional[Path] = None
    keep_all_nodes: bool = False

    # Graph preparation
    grouping_elements: Tuple[str, ...] = DEFAULT_GROUPING_ELEMENTS
    important_attributes: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    known_providers: Tuple[str, ...] = DEFAULT_KNOWN_PROVIDERS
    reconcile_mismatched: str = "prune"  # prune|keep
    strict: bool = False

    # Presentation
    label_location: str = DEFAULT_LABEL_LOCATION  # t|c|b
    base_margin: int = DEFAULT_BASE_MARGIN
    node_fontsize: int = DEFAULT_NODE_FONTSIZE
    cluster_fontsize: int = DEFAULT_CLUSTER_FONTSIZE
    icon_path: Path = Path(DEFAULT_ICON_PATH)

    # Output
    format: str = DEFAULT_FORMAT
    output: str = DEFAULT_OUTPUT
    dpi: int = DEFAULT_DPI

    # Runtime
    log_level: str = "INFO"
    json_logs: bool = False
    progress: bool = False

    def attributes_for(self, resource_type: str) -> Tuple[str, ...]:
        return tuple(self.important_attributes.get(resource_type, ()))


def _parse_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text) or {}
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigError(f"Failed to parse config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("Top-level config must be a mapping")
    return data


def _env_str(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip()
    if not raw:
        return None
    return raw


def _env_bool(name: str) -> Optional[bool]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip().lower()
    if not raw:
        return None
    return raw in {"1", "true", "yes", "on"}


def _coerce_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        raw = value.strip().lower()
        if raw in {"1", "true", "yes", "on"}:
            return True
        if raw in {"0", "false", "no", "off"}:
            return False
    raise ConfigError(f"Config field '{key}' must be a boolean")


def _coerce_int(key: str, value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return int(value)
        except ValueError:
            pass
    raise ConfigError(f"Config field '{key}' must be an integer")


def _coerce_str_list(key: str, value: Any) -> List[str]:
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
        return [v.strip() for v in value if v.strip()]
    raise ConfigError(f"Config field '{key}' must be a list of strings or comma-separated string")


def _coerce_important_attributes(value: Any) -> Dict[str, Tuple[str, ...]]:
    """
    Accepts either the list form used by terraview.yaml:
        important_attributes:
          - name: azurerm_subnet
            attributes: [address_prefixes]
    or a plain mapping of resource type to attribute names.
    """
    out: Dict[str, Tuple[str, ...]] = {}
    if isinstance(value, Mapping):
        for rtype, attrs in value.items():
            out[str(rtype)] = tuple(_coerce_str_list(f"important_attributes.{rtype}", attrs))
        return out
    if isinstance(value, list):
        for entry in value:
            if not isinstance(entry, Mapping) or not entry.get("name"):
                raise ConfigError("Each important_attributes entry must be a mapping with 'name' and 'attributes'")
            rtype = str(entry["name"])
            attrs = entry.get("attributes") or []
            out[rtype] = tuple(_coerce_str_list(f"important_attributes.{rtype}", attrs))
        return out
    raise ConfigError("Config field 'important_attributes' must be a list or mapping")


def _normalize_config_file(data: Dict[str, Any]) -> Dict[str, Any]:
    unknown = sorted(set(data.keys()) - ALLOWED_CONFIG_KEYS)
    if unknown:
        warnings.warn(f"Unknown config keys ignored: {', '.join(unknown)}")
    normalized: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in ALLOWED_CONFIG_KEYS or value is None:
            continue
        if key == "important_attributes":
            normalized[key] = _coerce_important_attributes(value)
        elif key in LIST_CONFIG_KEYS:
            normalized[key] = _coerce_str_list(key, value)
        elif key in BOOL_CONFIG_KEYS:
            normalized[key] = _coerce_bool(key, value)
        elif key in INT_CONFIG_KEYS:
            normalized[key] = _coerce_int(key, value)
        elif key in PATH_CONFIG_KEYS:
            if not isinstance(value, (str, Path)):
                raise ConfigError(f"Config field '{key}' must be a string path")
            normalized[key] = value
        elif key in STR_CONFIG_KEYS:
            if not isinstance(value, str):
                raise ConfigError(f"Config field '{key}' must be a string")
            normalized[key] = value
    return normalized


def _compact_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Drop keys with None values so they don't override lower-precedence config.
    """
    return {k: v for k, v in data.items() if v is not None}


def _merge_dicts(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(a)
    merged.update(b)
    return merged


def _validate(merged: Dict[str, Any]) -> None:
    loc = str(merged["label_location"]).lower()
    if loc not in LABEL_LOCATIONS:
        raise ConfigError(f"label_location must be one of: {', '.join(sorted(LABEL_LOCATIONS))}")
    fmt = str(merged["format"]).lower()
    if fmt not in OUTPUT_FORMATS:
        raise ConfigError(f"format must be one of: {', '.join(OUTPUT_FORMATS)}")
    mode = str(merged["reconcile_mismatched"]).lower()
    if mode not in RECONCILE_MODES:
        raise ConfigError(f"reconcile_mismatched must be one of: {', '.join(sorted(RECONCILE_MODES))}")
    for key in INT_CONFIG_KEYS:
        if int(merged[key]) <= 0:
            raise ConfigError(f"{key} must be a positive integer")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="terraview", description="Terraform dependency diagrams")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("path", nargs="?", default=".", help="Terraform working directory")
        p.add_argument("--config", type=Path, help=f"YAML/JSON config file (default: ./{DEFAULT_CONFIG_FILE})")
        p.add_argument("--graph-file", type=Path, default=None, help="Read DOT from a file instead of `terraform graph`")
        p.add_argument("--state", type=Path, default=None, help="Terraform state file (default: PATH/terraform.tfstate)")
        p.add_argument(
            "--strict",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Abort on per-node lookup misses and ambiguous traversal roots",
        )
        p.add_argument(
            "--keep-all-nodes",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Keep providers, variables and other non-resource nodes",
        )
        p.add_argument(
            "--json-logs",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Enable JSON logs",
        )
        p.add_argument("--log-level", default=None, help="Log level (INFO, DEBUG, ...)")

    p_print = subparsers.add_parser("print", help="Print diagram from terraform code")
    add_common(p_print)
    p_print.add_argument(
        "-f",
        "--format",
        default=None,
        choices=list(OUTPUT_FORMATS),
        help=f"Output format (default {DEFAULT_FORMAT})",
    )
    p_print.add_argument(
        "-o", "--output", default=None, help=f"Output base name; '-' prints DOT to stdout (default {DEFAULT_OUTPUT})"
    )
    p_print.add_argument("--dpi", type=int, default=None, help=f"Raster resolution (default {DEFAULT_DPI})")
    p_print.add_argument(
        "--progress",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Show pipeline progress",
    )

    p_inspect = subparsers.add_parser("inspect", help="Show inferred clusters without rendering")
    add_common(p_inspect)
    return parser


def load_view_config(
    args: Optional[argparse.Namespace] = None,
    argv: Optional[List[str]] = None,
) -> Tuple[str, ViewConfig]:
    """
    Build ViewConfig by merging defaults, optional config file, env vars, and CLI args.
    Precedence (low -> high): defaults < config file < env < CLI.

    Returns:
      (command, ViewConfig) where command is print|inspect
    """
    ns = args if args is not None else build_parser().parse_args(argv)
    command = ns.command

    base: Dict[str, Any] = {
        "state": None,
        "graph_file": None,
        "keep_all_nodes": False,
        "grouping_elements": list(DEFAULT_GROUPING_ELEMENTS),
        "important_attributes": {},
        "known_providers": list(DEFAULT_KNOWN_PROVIDERS),
        "reconcile_mismatched": "prune",
        "strict": False,
        "label_location": DEFAULT_LABEL_LOCATION,
        "base_margin": DEFAULT_BASE_MARGIN,
        "node_fontsize": DEFAULT_NODE_FONTSIZE,
        "cluster_fontsize": DEFAULT_CLUSTER_FONTSIZE,
        "icon_path": DEFAULT_ICON_PATH,
        "format": DEFAULT_FORMAT,
        "output": DEFAULT_OUTPUT,
        "dpi": DEFAULT_DPI,
        "log_level": "INFO",
        "json_logs": False,
        "progress": False,
    }

    # config file: explicit --config, else ./terraview.yaml when present
    file_cfg: Dict[str, Any] = {}
    config_path = getattr(ns, "config", None)
    if config_path is None and Path(DEFAULT_CONFIG_FILE).is_file():
        config_path = Path(DEFAULT_CONFIG_FILE)
    if config_path is not None:
        file_cfg = _normalize_config_file(_parse_config_file(Path(config_path)))

    env_cfg: Dict[str, Any] = _compact_dict(
        {
            "state": _env_str("TERRAVIEW_STATE"),
            "graph_file": _env_str("TERRAVIEW_GRAPH_FILE"),
            "format": _env_str("TERRAVIEW_FORMAT"),
            "output": _env_str("TERRAVIEW_OUTPUT"),
            "icon_path": _env_str("TERRAVIEW_ICON_PATH"),
            "strict": _env_bool("TERRAVIEW_STRICT"),
            "json_logs": _env_bool("TERRAVIEW_JSON_LOGS"),
            "log_level": _env_str("TERRAVIEW_LOG_LEVEL"),
        }
    )

    cli_cfg: Dict[str, Any] = _compact_dict(
        {
            "state": getattr(ns, "state", None),
            "graph_file": getattr(ns, "graph_file", None),
            "keep_all_nodes": getattr(ns, "keep_all_nodes", None),
            "strict": getattr(ns, "strict", None),
            "format": getattr(ns, "format", None),
            "output": getattr(ns, "output", None),
            "dpi": getattr(ns, "dpi", None),
            "json_logs": getattr(ns, "json_logs", None),
            "log_level": getattr(ns, "log_level", None),
            "progress": getattr(ns, "progress", None),
        }
    )

    merged = _merge_dicts(base, _merge_dicts(file_cfg, _merge_dicts(env_cfg, cli_cfg)))
    _validate(merged)

    path = Path(getattr(ns, "path", None) or ".")
    state = Path(merged["state"]) if merged.get("state") else None
    if state is None and (path / "terraform.tfstate").is_file():
        state = path / "terraform.tfstate"

    cfg = ViewConfig(
        path=path,
        state=state,
        graph_file=Path(merged["graph_file"]) if merged.get("graph_file") else None,
        keep_all_nodes=bool(merged["keep_all_nodes"]),
        grouping_elements=tuple(merged["grouping_elements"]),
        important_attributes=dict(merged["important_attributes"]),
        known_providers=tuple(merged["known_providers"]),
        reconcile_mismatched=str(merged["reconcile_mismatched"]).lower(),
        strict=bool(merged["strict"]),
        label_location=str(merged["label_location"]).lower(),
        base_margin=int(merged["base_margin"]),
        node_fontsize=int(merged["node_fontsize"]),
        cluster_fontsize=int(merged["cluster_fontsize"]),
        icon_path=Path(merged["icon_path"]),
        format=str(merged["format"]).lower(),
        output=str(merged["output"]),
        dpi=int(merged["dpi"]),
        log_level=str(merged["log_level"] or "INFO").upper(),
        json_logs=bool(merged["json_logs"]),
        progress=bool(merged["progress"]),
    )
    return command, cfg


def dump_config(cfg: ViewConfig) -> Dict[str, Any]:
    return {
        "path": str(cfg.path),
        "state": str(cfg.state) if cfg.state else None,
        "graph_file": str(cfg.graph_file) if cfg.graph_file else None,
        "keep_all_nodes": cfg.keep_all_nodes,
        "grouping_elements": list(cfg.grouping_elements),
        "important_attributes": {k: list(v) for k, v in sorted(cfg.important_attributes.items())},
        "known_providers": list(cfg.known_providers),
        "reconcile_mismatched": cfg.reconcile_mismatched,
        "strict": cfg.strict,
        "label_location": cfg.label_location,
        "base_margin": cfg.base_margin,
        "node_fontsize": cfg.node_fontsize,
        "cluster_fontsize": cfg.cluster_fontsize,
        "icon_path": str(cfg.icon_path),
        "format": cfg.format,
        "output": cfg.output,
        "dpi": cfg.dpi,
        "log_level": cfg.log_level,
        "json_logs": cfg.json_logs,
        "progress": cfg.progress,
    }
