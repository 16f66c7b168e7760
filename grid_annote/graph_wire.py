# grid_annote/graph_wire.py
from __future__ import annotations

import logging
import re
from typing import Dict, List, Tuple

from .domain import Tag
from .errors import MalformedGraphPayload

logger = logging.getLogger(__name__)

GraphNode = Dict[str, str]


# "<id>" [ body ];   (non-greedy body, single line)
_NODE_STATEMENT_RE = re.compile(r'"[^"]+"\s*\[(.*?)\];')
# key="value"   (values never contain escaped quotes)
_ATTRIBUTE_RE = re.compile(r'(\w+)="([^"]*)"')


# -----------------------------
# Node statements
# -----------------------------

def decode_graph(text: str) -> List[GraphNode]:
    """
    Decode node statements of a graph payload into attribute maps.

    - One map per matching `"id" [...]` statement, in source order.
    - Anything that doesn't look like a node statement (edges, comments,
      graph headers, garbage) is skipped.
    - Repeated keys inside one statement: later value wins.
    """
    if not isinstance(text, str):
        raise MalformedGraphPayload(f"Graph payload must be text, got {type(text).__name__}")

    nodes: List[GraphNode] = []
    for match in _NODE_STATEMENT_RE.finditer(text):
        body = match.group(1)
        attrs: GraphNode = {}
        for key, value in _ATTRIBUTE_RE.findall(body):
            attrs[key] = value
        if not attrs and body.strip():
            logger.debug(f"Skipping node statement without attributes: {match.group(0)[:80]!r}")
        nodes.append(attrs)
    return nodes


def _clean(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


# -----------------------------
# Tags
# -----------------------------

def extract_tags(nodes: List[GraphNode]) -> List[Tag]:
    """Nodes carrying both a `pubkey` and a `memo` become tags; others are ignored."""
    out: List[Tag] = []
    for node in nodes:
        public_key = _clean(node.get("pubkey"))
        memo = _clean(node.get("memo"))
        if not public_key or not memo:
            continue
        out.append(Tag(public_key=public_key, memo=memo))
    return out


def decode_tags(text: str) -> List[Tag]:
    return extract_tags(decode_graph(text))


# -----------------------------
# Video catalog nodes
# -----------------------------

def extract_video_nodes(nodes: List[GraphNode]) -> List[Tuple[str, str]]:
    """(namespace, memo) for every node describing a video track."""
    out: List[Tuple[str, str]] = []
    for node in nodes:
        namespace = _clean(node.get("namespace"))
        memo = _clean(node.get("memo"))
        if not namespace or not memo:
            continue
        out.append((namespace, memo))
    return out
