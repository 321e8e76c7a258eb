from __future__ import annotations

from narramorph.modules.reader.models import NodeState, ReaderPath
from narramorph.modules.reader.state import visit_node


def make_node(
    node_id: str,
    character: str = "Archaeologist",
    temporal_value: int = 2,
    *,
    attractors: list[str] | None = None,
    content: str | None = None,
    **extra,
) -> NodeState:
    return NodeState(
        id=node_id,
        character=character,
        temporal_value=temporal_value,
        strange_attractors=list(attractors or []),
        current_content=content,
        **extra,
    )


def registry(*nodes: NodeState) -> dict[str, NodeState]:
    return {node.id: node for node in nodes}


def walk(
    nodes: dict[str, NodeState],
    node_ids: list[str],
    *,
    engage: bool = False,
    durations: list[float | None] | None = None,
) -> tuple[ReaderPath, dict[str, NodeState]]:
    """Visit ``node_ids`` in order and return the path plus the updated registry.

    ``durations[i]`` is the time spent on the node visited before step ``i``.
    With ``engage`` every visit engages the visited node's attractor tags.
    """
    path = ReaderPath()
    current = dict(nodes)
    for position, node_id in enumerate(node_ids):
        node = current[node_id]
        duration = durations[position] if durations is not None else None
        path, current[node_id] = visit_node(
            path,
            node,
            attractors=list(node.strange_attractors) if engage else None,
            duration_ms=duration,
        )
    return path, current


def path_of(sequence: list[str], character: str = "Archaeologist", temporal_value: int = 2) -> ReaderPath:
    nodes = registry(*(make_node(node_id, character, temporal_value) for node_id in dict.fromkeys(sequence)))
    path, _ = walk(nodes, sequence)
    return path
