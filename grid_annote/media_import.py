# grid_annote/media_import.py
from __future__ import annotations

import re
from typing import List, Optional
from urllib.parse import parse_qs, urlparse

from .domain import VideoTrack
from .graph_wire import decode_graph, extract_video_nodes


_VIDEO_ID_RE = re.compile(r"[\w-]{11}", re.ASCII)


def is_probably_url(s: str) -> bool:
    try:
        p = urlparse(s.strip())
        return p.scheme in ("http", "https") and bool(p.netloc)
    except Exception:
        return False


def _valid_id(candidate: Optional[str]) -> Optional[str]:
    if candidate and _VIDEO_ID_RE.fullmatch(candidate):
        return candidate
    return None


def extract_video_id(value: str) -> Optional[str]:
    """
    11-character YouTube id from a bare id or a link.

    Accepts youtu.be/<id>, youtube.com/watch?v=<id>, youtube.com/shorts/<id>
    (last path segment) and, as a last resort, the first id-shaped run in the
    text.
    """
    if not value:
        return None
    trimmed = value.strip()
    if not trimmed:
        return None

    if _valid_id(trimmed):
        return trimmed

    try:
        url = urlparse(trimmed)
    except ValueError:
        url = None

    host = (url.hostname or "") if url is not None else ""
    if host:
        segments = [s for s in url.path.split("/") if s]
        if "youtu.be" in host:
            found = _valid_id(segments[-1] if segments else None)
            if found:
                return found
        if "youtube.com" in host:
            for v in parse_qs(url.query).get("v", []):
                found = _valid_id(v)
                if found:
                    return found
            found = _valid_id(segments[-1] if segments else None)
            if found:
                return found

    m = _VIDEO_ID_RE.search(value)
    return m.group(0) if m else None


def watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


def track_for_video(value: str, namespace: Optional[str] = None) -> Optional[VideoTrack]:
    """
    New track for a link or id typed by the user (or read from the catalog).

    source keeps a pasted link as-is; anything else becomes the watch URL.
    """
    video_id = extract_video_id(value)
    if not video_id:
        return None
    source = value.strip() if is_probably_url(value) else watch_url(video_id)
    return VideoTrack(video_id=video_id, source=source, namespace=namespace)


def tracks_from_graph(text: str) -> List[VideoTrack]:
    """Catalog graph -> one track per node with a namespace and a video link memo."""
    out: List[VideoTrack] = []
    for namespace, memo in extract_video_nodes(decode_graph(text)):
        track = track_for_video(memo, namespace=namespace)
        if track is not None:
            out.append(track)
    return out
