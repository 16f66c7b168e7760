# grid_annote/app.py
from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Dict, List, Optional

from PyQt5.QtCore import QCoreApplication, QEventLoop

from .correlation import AddressingScheme, correlate_tags
from .domain import AnnotationPoint, VideoTrack
from .errors import GridAnnoteError
from .graph_wire import decode_tags
from .keys import derive_grid, derive_namespace_identity, derive_time_scoped_grid, validate_namespace
from .media_import import tracks_from_graph
from .persistence import AppConfig, load_app_config, save_app_config
from .session.graph_session import GraphSession
from .session.tag_loader import TagLoader
from .timeutils import duration_floor, format_timecode

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    root = logging.getLogger("grid_annote")
    root.handlers[:] = [handler]
    root.setLevel(level)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="grid_annote",
        description="Derive namespace grids and rebuild tagged annotation points from a graph store.",
    )
    p.add_argument("--config-dir", default=None, help="Directory holding config.json")
    p.add_argument("--endpoint", default=None, help="WebSocket endpoint (overrides config)")
    p.add_argument("--verbose", "-v", action="store_true")
    sub = p.add_subparsers(dest="command", required=True)

    ident = sub.add_parser("identity", help="Print the base identity key of a namespace")
    ident.add_argument("namespace")

    grid = sub.add_parser("grid", help="Print the derived key grid of a namespace")
    grid.add_argument("namespace")
    grid.add_argument("--second", type=int, default=None, help="Time-scoped grid for this second")
    grid.add_argument("--rows", type=int, default=None)
    grid.add_argument("--columns", type=int, default=None)

    corr = sub.add_parser("correlate", help="Rebuild annotation points for a namespace")
    corr.add_argument("namespace")
    corr.add_argument("--duration", type=float, required=True, help="Video duration in seconds")
    corr.add_argument("--graph-file", default=None, help="Read the graph from a file instead of the endpoint")
    corr.add_argument("--scheme", choices=[s.value for s in AddressingScheme], default=None)

    cat = sub.add_parser("catalog", help="List videos from the catalog graph")
    cat.add_argument("--graph-file", default=None)

    conf = sub.add_parser("set-endpoint", help="Store the endpoint in config.json")
    conf.add_argument("url")

    return p


def _read_text(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def _fetch(cfg: AppConfig, public_key: str) -> Optional[str]:
    session = GraphSession(
        endpoint=cfg.endpoint,
        subprotocol=cfg.subprotocol,
        timeout_s=cfg.request_timeout_s,
    )
    try:
        return session.fetch_graph(public_key)
    finally:
        session.close()


def _load_points(
    cfg: AppConfig,
    namespace: str,
    duration: float,
    scheme: AddressingScheme,
) -> Optional[List[AnnotationPoint]]:
    """
    Fetch and correlate one namespace through a TagLoader, waiting on a local
    event loop. None when the graph store gave no data.
    """
    session = GraphSession(
        endpoint=cfg.endpoint,
        subprotocol=cfg.subprotocol,
        timeout_s=cfg.request_timeout_s,
    )
    loader = TagLoader(session, shape=cfg.grid_shape(), scheme=scheme)
    track = VideoTrack(video_id="", source="", namespace=namespace)
    result: Dict[str, object] = {"points": None}
    loop = QEventLoop()

    def on_points(key: str, points) -> None:
        if key == track.key:
            result["points"] = points

    def on_finished(key: str, had_data: bool) -> None:
        if key == track.key:
            loop.quit()

    loader.points_ready.connect(on_points)
    loader.load_finished.connect(on_finished)
    try:
        # a missing endpoint finishes inside load_track
        if loader.load_track(track, duration) and loader.is_loading():
            loop.exec_()
    finally:
        loader.shutdown()
    return result["points"]


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def run_app(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    cfg = load_app_config(args.config_dir)
    if args.endpoint:
        cfg.endpoint = args.endpoint
    shape = cfg.grid_shape()

    # Socket objects need an event loop even without a GUI.
    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])  # noqa: F841

    try:
        if args.command == "identity":
            _print_json(derive_namespace_identity(args.namespace).to_dict())
            return 0

        if args.command == "grid":
            rows = args.rows if args.rows is not None else shape.rows
            columns = args.columns if args.columns is not None else shape.columns
            if args.second is None:
                cells = derive_grid(args.namespace, rows, columns)
            else:
                cells = derive_time_scoped_grid(args.namespace, args.second, rows, columns)
            _print_json([c.to_dict() for c in cells])
            return 0

        if args.command == "correlate":
            validate_namespace(args.namespace)
            scheme = AddressingScheme(args.scheme or cfg.addressing_scheme)
            if args.graph_file:
                points = correlate_tags(
                    args.namespace,
                    duration_floor(args.duration),
                    decode_tags(_read_text(args.graph_file)),
                    track_key=args.namespace,
                    rows=shape.rows,
                    columns=shape.columns,
                    scheme=scheme,
                )
            else:
                points = _load_points(cfg, args.namespace, args.duration, scheme)
            if points is None:
                logger.warning("No graph data; nothing to correlate")
                _print_json([])
                return 0
            for p in points:
                logger.info(f"{format_timecode(p.time)} r{p.row} c{p.column}: {p.note}")
            _print_json([p.to_dict() for p in points])
            return 0

        if args.command == "catalog":
            if args.graph_file:
                graph = _read_text(args.graph_file)
            else:
                graph = _fetch(cfg, cfg.catalog_key)
            tracks = tracks_from_graph(graph) if graph else []
            _print_json([
                {"video_id": t.video_id, "source": t.source, "namespace": t.namespace}
                for t in tracks
            ])
            return 0

        if args.command == "set-endpoint":
            cfg.endpoint = args.url.strip()
            path = save_app_config(cfg, args.config_dir)
            logger.info(f"Saved endpoint to {path}")
            return 0
    except GridAnnoteError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 2
    except OSError as e:
        logger.error(f"Could not read input: {e}")
        return 1

    return 1
