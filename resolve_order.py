"""Order tables so every table is created after the tables it references."""

from __future__ import annotations

import logging
from typing import Iterable

from sql_types import ResolutionError, TableDeps

logger = logging.getLogger(__name__)

_UNVISITED = 0
_IN_PROGRESS = 1
_DONE = 2


def _build_graph(tables: Iterable[TableDeps]) -> dict[str, list[str]]:
    merged: dict[str, list[str]] = {}
    for item in tables:
        deps = merged.setdefault(item.table, [])
        for dep in item.dependencies:
            if dep not in deps:
                deps.append(dep)

    position = {name: idx for idx, name in enumerate(merged)}
    graph: dict[str, list[str]] = {}
    for name, deps in merged.items():
        known = []
        for dep in deps:
            if dep == name:
                continue
            if dep not in position:
                logger.debug("%s references %s which is not created by this dump", name, dep)
                continue
            known.append(dep)
        graph[name] = sorted(known, key=position.__getitem__)
    return graph


def resolve_order(tables: Iterable[TableDeps]) -> list[str]:
    """Return table names ordered so dependencies come first.

    Tables without a relationship keep their input order. When foreign keys
    form a cycle, the table of the cycle met first in input order is emitted
    first and the tables waiting on it follow immediately after; their
    foreign keys to it have to be added later by ALTER. Self references are
    not cycles.
    """
    graph = _build_graph(tables)
    limit = len(graph)

    state = dict.fromkeys(graph, _UNVISITED)
    depth: dict[str, int] = {}
    held_by: dict[str, str] = {}
    held: dict[str, list[str]] = {}
    emitted: set[str] = set()
    order: list[str] = []

    def blocker_depth(name: str) -> int:
        holder = held_by[name]
        hops = 0
        while state[holder] != _IN_PROGRESS:
            holder = held_by[holder]
            hops += 1
            if hops > limit:
                raise ResolutionError(f"Deferral chain for {name} exceeds the number of tables")
        return depth[holder]

    for root in graph:
        if state[root] != _UNVISITED:
            continue

        state[root] = _IN_PROGRESS
        depth[root] = 0
        # frame: [table, next dependency index, shallowest blocker depth]
        stack: list[list] = [[root, 0, 0]]

        while stack:
            frame = stack[-1]
            name, idx, low = frame
            deps = graph[name]

            if idx < len(deps):
                frame[1] += 1
                dep = deps[idx]
                if state[dep] == _UNVISITED:
                    state[dep] = _IN_PROGRESS
                    depth[dep] = len(stack)
                    stack.append([dep, 0, len(stack)])
                elif state[dep] == _IN_PROGRESS:
                    logger.debug("Foreign key cycle: %s -> %s", name, dep)
                    frame[2] = min(low, depth[dep])
                elif dep not in emitted:
                    frame[2] = min(low, blocker_depth(dep))
                continue

            stack.pop()
            state[name] = _DONE
            group = [name] + held.pop(name, [])
            if low < len(stack):
                holder = stack[low][0]
                held.setdefault(holder, []).extend(group)
                for item in group:
                    held_by[item] = holder
                stack[-1][2] = min(stack[-1][2], low)
            else:
                order.extend(group)
                emitted.update(group)

    if len(order) != limit or set(order) != set(graph):
        raise ResolutionError(f"Resolved {len(order)} of {limit} tables")
    return order


def deferred_references(tables: Iterable[TableDeps], order: list[str]) -> list[tuple[str, str]]:
    """(table, referenced table) pairs whose referenced table is created later."""
    position = {name: idx for idx, name in enumerate(order)}
    deferred: list[tuple[str, str]] = []
    for item in tables:
        if item.table not in position:
            continue
        for dep in item.dependencies:
            if dep in position and dep != item.table and position[dep] > position[item.table]:
                pair = (item.table, dep)
                if pair not in deferred:
                    deferred.append(pair)
    return deferred
