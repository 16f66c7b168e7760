# grid_annote/__init__.py
'''
grid_annote/
    __init__.py
    __main__.py

    app.py                 # command line + QCoreApplication boot
    errors.py              # error taxonomy (derivation, payload, transport)

    domain.py              # dataclasses: GridShape, KeyIdentity, GridCell, Tag, AnnotationPoint, VideoTrack
    mnemonic_seed.py       # namespace passphrase -> BIP-39 phrase -> 64-byte seed
    keys.py                # child seeds, Ed25519 keys, namespace identity, (time-scoped) grids
    graph_wire.py          # graph text -> node attribute maps -> tags / catalog nodes
    correlation.py         # tags -> annotation points (grid search + explicit memos)
    persistence.py         # load/save config.json
    media_import.py        # video ids from links, catalog graph -> tracks
    timeutils.py           # timecodes, visible points, timeline markers

    session/
      graph_session.py     # WebSocket request/response with timeout (QWebSocket)
      tag_loader.py        # per-track fetch + correlation on worker threads
'''

from __future__ import annotations

__all__ = ["__version__", "run_app"]

__version__ = "0.1.0"

from .app import run_app
