"""图遍历工具（校验器与结构修复器共用）

所有函数只接受"有效边"（source/target 都指向已存在节点），
遍历顺序严格按节点顺序 + 边的输入顺序，保证结果可复现。
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Iterator
from typing import Protocol, TypeVar


class Link(Protocol):
    source: str
    target: str


LinkT = TypeVar("LinkT", bound=Link)


def build_adjacency(node_ids: Iterable[str], edges: Iterable[LinkT]) -> dict[str, list[LinkT]]:
    adjacency: dict[str, list[LinkT]] = {node_id: [] for node_id in node_ids}
    for edge in edges:
        adjacency.setdefault(edge.source, []).append(edge)
    return adjacency


def find_back_edge(node_order: list[str], edges: list[LinkT]) -> LinkT | None:
    """深度优先遍历，返回第一个环的闭合边（指向递归栈中节点的边）；无环返回 None"""
    adjacency = build_adjacency(node_order, edges)
    visited: set[str] = set()
    on_stack: set[str] = set()

    for root in node_order:
        if root in visited:
            continue
        visited.add(root)
        on_stack.add(root)
        stack: list[tuple[str, Iterator[LinkT]]] = [(root, iter(adjacency.get(root, ())))]
        while stack:
            node_id, outgoing = stack[-1]
            edge = next(outgoing, None)
            if edge is None:
                stack.pop()
                on_stack.discard(node_id)
                continue
            target = edge.target
            if target in on_stack:
                return edge
            if target not in visited:
                visited.add(target)
                on_stack.add(target)
                stack.append((target, iter(adjacency.get(target, ()))))
    return None


def reachable_from(starts: Iterable[str], edges: Iterable[Link], *, reverse: bool = False) -> set[str]:
    """BFS 求可达集合；reverse=True 时沿边反向遍历"""
    neighbors: dict[str, list[str]] = {}
    for edge in edges:
        src, dst = (edge.target, edge.source) if reverse else (edge.source, edge.target)
        neighbors.setdefault(src, []).append(dst)

    seen: set[str] = set(starts)
    queue: deque[str] = deque(seen)
    while queue:
        current = queue.popleft()
        for nxt in neighbors.get(current, ()):
            if nxt not in seen:
                seen.add(nxt)
                queue.append(nxt)
    return seen


def linked_node_ids(edges: Iterable[Link]) -> set[str]:
    """至少出现在一条边上的节点"""
    linked: set[str] = set()
    for edge in edges:
        linked.add(edge.source)
        linked.add(edge.target)
    return linked


def orphan_reachability(
    inputs: list[str], outputs: list[str], edges: list[LinkT], *, node_count: int
) -> tuple[set[str], set[str]] | None:
    """孤立节点判定用的 (正向可达, 反向可达) 集合

    - Input 与 Output 都存在：从 Input 正向、从 Output 反向求可达
    - 缺少任一端：只有完全没有连线的节点算孤立（两个集合都取有连线的节点）
    - 单节点图不做判定，返回 None
    """
    if inputs and outputs:
        return reachable_from(inputs, edges), reachable_from(outputs, edges, reverse=True)
    if node_count < 2:
        return None
    linked = linked_node_ids(edges)
    return linked, linked
