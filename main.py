"""CLI entrypoint for the pipeTree follower topology viewer."""
from __future__ import annotations

import argparse
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Set

from pipeTree.config.files import ConfigFileError, read_mapping_file
from pipeTree.config.layout import DEFAULT_STYLE_NAME, get_layout_styles, load_layout_styles, set_layout_styles
from pipeTree.config.settings import RuntimeSettings, load_runtime_settings
from pipeTree.core.graph_builder import ViewMode, build_graph
from pipeTree.core.labels import LabelField
from pipeTree.data.graph_io import export_edges_to_csv, export_graph_json
from pipeTree.data.source import (
    DemoTopologySource,
    FetchError,
    FileTopologySource,
    HttpTopologySource,
    TopologySource,
)
from pipeTree.render.controls import build_control_panel
from pipeTree.render.renderer import MatplotlibRenderer
from pipeTree.workflows.controller import ViewController, ViewState
from pipeTree.workflows.scheduler import CanvasScheduler, VirtualScheduler

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"

COMMAND_CHOICES = ("render", "show", "export")

PATH_KEYS = {
    "source_file",
    "output",
    "layout_config",
    "env_file",
}

OPTION_DESTS = {
    "group": "groups",
    "config": "config_file",
}

# sectioned config files map onto the same destinations as the CLI flags
CONFIG_SECTIONS: Dict[str, Dict[str, str]] = {
    "source": {"url": "source_url", "file": "source_file", "demo": "demo", "groups": "groups"},
    "view": {"mode": "view_mode", "layout": "layout", "label": "label", "clusters": "clusters"},
    "refresh": {"interval": "refresh_interval", "auto": "auto_refresh"},
}

logger = logging.getLogger("pipetree.cli")


def _load_viewer_config(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        raise ConfigFileError(f"Viewer config {path} does not exist")
    return read_mapping_file(path, purpose="viewer config")


def _flatten_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Turn ``{"view": {"mode": "both"}}`` and ``{"view-mode": "both"}`` alike into ``{"view_mode": "both"}``."""

    flat: Dict[str, Any] = {}
    for raw_key, value in config.items():
        key = str(raw_key).replace("-", "_")
        section = CONFIG_SECTIONS.get(key)
        if section is None or not isinstance(value, dict):
            flat[OPTION_DESTS.get(key, key)] = value
            continue
        for raw_option, option_value in value.items():
            dest = section.get(str(raw_option).replace("-", "_"))
            if dest is None:
                logger.warning("Ignoring unknown viewer config key '%s.%s'", key, raw_option)
                continue
            flat[dest] = option_value
    return flat


def _collect_cli_overrides(argv: Iterable[str]) -> Set[str]:
    overrides: Set[str] = set()
    for index, token in enumerate(argv):
        if token == "--":
            break
        if token.startswith("--"):
            name = token[2:]
            if not name:
                continue
            if "=" in name:
                name = name.split("=", 1)[0]
            if name.startswith("no-"):
                name = name[3:]
            name = name.replace("-", "_")
            overrides.add(OPTION_DESTS.get(name, name))
        elif index == 0:
            overrides.add("command")
    return overrides


def _apply_config(
    args: argparse.Namespace,
    config: Dict[str, Any],
    *,
    overrides: Set[str],
    base_dir: Path | None = None,
) -> argparse.Namespace:
    """Fill options that were not given on the command line from a viewer config."""

    for dest, value in _flatten_config(config).items():
        if dest == "config_file":
            continue
        if not hasattr(args, dest):
            logger.warning("Ignoring unknown viewer config option '%s'", dest)
            continue
        if dest in overrides or (dest == "command" and args.command):
            continue
        if dest == "groups" and isinstance(value, (str, int)):
            value = [str(value)]
        if dest in PATH_KEYS and isinstance(value, str):
            path = Path(value).expanduser()
            if base_dir is not None and not path.is_absolute():
                path = base_dir / path
            value = str(path)
        setattr(args, dest, value)
    return args


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Visualize the follower topology of POS messaging pipes")
    parser.add_argument("command", nargs="?", choices=COMMAND_CHOICES, help="Task to run")
    parser.add_argument("--config", dest="config_file", help="Path to YAML or JSON config with CLI options")
    parser.add_argument("--env-file", dest="env_file", help="Optional .env file with PIPETREE_* settings")
    parser.add_argument("--source-url", dest="source_url", help="Pipe registry endpoint returning the topology JSON")
    parser.add_argument("--source-file", dest="source_file", help="Read the topology from a local JSON file")
    parser.add_argument("--demo", action="store_true", help="Use the bundled demo topology")
    parser.add_argument(
        "--group",
        dest="groups",
        action="append",
        default=[],
        help="Registry group (location id) filter; repeat for several groups",
    )
    parser.add_argument(
        "--view-mode",
        dest="view_mode",
        default=ViewMode.FOLLOWING.value,
        choices=[mode.value for mode in ViewMode],
        help="Which relationship to draw",
    )
    parser.add_argument("--layout", dest="layout", default=DEFAULT_STYLE_NAME, help="Layout style preset name")
    parser.add_argument(
        "--label",
        dest="label",
        default=LabelField.PIPE_HOST.value,
        choices=[label.value for label in LabelField],
        help="Node property used as the label",
    )
    parser.add_argument("--no-clusters", dest="clusters", action="store_false", help="Do not group followers by location")
    parser.add_argument("--layout-config", dest="layout_config", help="YAML or JSON file overriding layout presets")
    parser.add_argument("--output", help="Output path (PNG/SVG/PDF for render, JSON/CSV for export)")
    parser.add_argument("--auto-refresh", dest="auto_refresh", action="store_true", help="Start with auto refresh enabled (show)")
    parser.add_argument("--refresh-interval", dest="refresh_interval", type=float, help="Auto refresh interval in seconds")
    parser.add_argument(
        "--log-level",
        dest="log_level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    return parser


def _init_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def _resolve_source(args: argparse.Namespace, settings: RuntimeSettings) -> TopologySource:
    aliases = settings.host_aliases
    if args.demo:
        return DemoTopologySource(host_aliases=aliases)
    if args.source_file:
        return FileTopologySource(Path(args.source_file), host_aliases=aliases)
    url = args.source_url or settings.source_url
    if url:
        return HttpTopologySource(
            url,
            timeout=settings.timeout,
            headers=settings.headers,
            groups=args.groups,
            host_aliases=aliases,
        )
    if settings.source_file:
        return FileTopologySource(settings.source_file, host_aliases=aliases)
    logger.info("No topology source configured; using the bundled demo topology.")
    return DemoTopologySource(host_aliases=aliases)


def _view_state(args: argparse.Namespace) -> ViewState:
    return ViewState(
        view_mode=ViewMode.parse(args.view_mode),
        layout_style=args.layout,
        label_field=LabelField.parse(args.label),
        cluster_groups=bool(args.clusters),
    )


def _run_render(source: TopologySource, state: ViewState, output: Path) -> int:
    renderer = MatplotlibRenderer()
    controller = ViewController(source, renderer, VirtualScheduler(), state=state)
    controller.refresh()
    if controller.error:
        print(f"Topology fetch failed: {controller.error.message}", file=sys.stderr)
        if controller.topology is None:
            return 1
        print("Rendering the bundled demo topology instead.", file=sys.stderr)
    output.parent.mkdir(parents=True, exist_ok=True)
    renderer.save(output)
    print(f"Graph rendered to {output}")
    return 0


def _run_show(source: TopologySource, state: ViewState, settings: RuntimeSettings, auto_refresh: bool) -> int:
    import matplotlib.pyplot as plt

    figure = plt.figure(figsize=(14, 9))
    figure.canvas.manager.set_window_title("Messaging Pipe Hierarchy")
    renderer = MatplotlibRenderer(figure, rect=(0.0, 0.0, 0.8, 0.92))
    scheduler = CanvasScheduler(figure.canvas)
    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="pipetree-fetch") as executor:
        controller = ViewController(
            source,
            renderer,
            scheduler,
            state=state,
            executor=executor,
            refresh_interval=settings.refresh_interval,
        )
        controller.set_auto_refresh(auto_refresh)
        panel = build_control_panel(figure, controller)
        controller.refresh()
        try:
            plt.show()
        finally:
            controller.close()
            scheduler.close()
            logger.debug("Viewer closed (%s controls)", len(panel.widgets))
    return 0


def _run_export(source: TopologySource, state: ViewState, output: Path) -> int:
    try:
        topology = source.fetch()
    except FetchError as exc:
        print(f"Topology fetch failed: {exc}", file=sys.stderr)
        return 1
    model = build_graph(topology, state.build_options())
    if output.suffix.lower() == ".csv":
        path = export_edges_to_csv(model, output.name, directory=output.parent)
    else:
        path = export_graph_json(model, output.name, directory=output.parent)
    print(f"Graph exported to {path}")
    return 0


def main(argv: list[str] | None = None) -> int:
    argv_list = list(argv) if argv is not None else sys.argv[1:]
    parser = _build_parser()
    args = parser.parse_args(argv_list)

    cli_overrides = _collect_cli_overrides(argv_list)
    if args.config_file:
        config_path = Path(args.config_file).expanduser()
        try:
            config_values = _load_viewer_config(config_path)
        except ConfigFileError as exc:
            parser.error(str(exc))
        args = _apply_config(args, config_values, overrides=cli_overrides, base_dir=config_path.parent)

    if args.command is None:
        parser.error("A command must be provided via CLI or --config")

    if args.command not in COMMAND_CHOICES:
        parser.error(f"Unknown command {args.command}")

    _init_logging(args.log_level)

    settings = load_runtime_settings(Path(args.env_file).expanduser() if args.env_file else None)

    layout_config: Optional[Path] = None
    if args.layout_config:
        layout_config = Path(args.layout_config).expanduser()
        if not layout_config.is_file():
            parser.error(f"Layout config not found: {layout_config}")
    elif settings.layout_config:
        layout_config = settings.layout_config
    try:
        set_layout_styles(load_layout_styles(layout_config))
    except ConfigFileError as exc:
        parser.error(str(exc))

    if args.layout not in get_layout_styles():
        parser.error(f"Unknown layout style '{args.layout}'; choose from: {', '.join(get_layout_styles())}")

    try:
        state = _view_state(args)
    except ValueError as exc:
        parser.error(str(exc))

    if args.refresh_interval is not None:
        if args.refresh_interval <= 0:
            parser.error("--refresh-interval must be positive")
        settings = replace(settings, refresh_interval=args.refresh_interval)

    source = _resolve_source(args, settings)
    logger.info("Topology source: %s", source.description)

    if args.command == "render":
        return _run_render(source, state, Path(args.output or "pipe_tree.png").expanduser())

    if args.command == "export":
        return _run_export(source, state, Path(args.output or "pipe_tree.json").expanduser())

    return _run_show(source, state, settings, args.auto_refresh)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
