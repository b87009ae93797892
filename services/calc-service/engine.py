"""
Calculation tree engine.

Pure functions over read snapshots of calculation records:

* apply_operation - child value from parent value, operation and operand
* build_forest    - flat, parent-referencing records -> ordered forest
* resolve_root    - walk parent links to the top-most ancestor

Nothing in here performs I/O or logging; the service layer owns both.
"""

from __future__ import annotations

import operator
from collections.abc import Callable, Collection, Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from errors import CorruptTreeError, DivisionByZeroError, InvalidOperationError

DEFAULT_MAX_DEPTH = 10_000


class Operation(str, Enum):
    ADD = "+"
    SUBTRACT = "-"
    MULTIPLY = "*"
    DIVIDE = "/"

    @classmethod
    def parse(cls, symbol: Operation | str) -> Operation:
        try:
            return cls(symbol)
        except ValueError:
            raise InvalidOperationError(symbol) from None


_OPERATORS: dict[Operation, Callable[[float, float], float]] = {
    Operation.ADD: operator.add,
    Operation.SUBTRACT: operator.sub,
    Operation.MULTIPLY: operator.mul,
    Operation.DIVIDE: operator.truediv,
}


@dataclass(frozen=True)
class CalculationRecord:
    """One persisted calculation, optionally denormalized with the creator's username."""

    id: int
    user_id: int
    value: float
    parent_id: int | None = None
    operation: Operation | None = None
    operand: float | None = None
    created_at: datetime | None = None
    username: str | None = None

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


@dataclass
class TreeNode:
    record: CalculationRecord
    children: list[TreeNode] = field(default_factory=list)

    @property
    def id(self) -> int:
        return self.record.id


def apply_operation(operation: Operation | str, parent_value: float, operand: float) -> float:
    """
    Compute a child value with float64 semantics.

    Raises InvalidOperationError for a symbol outside {+, -, *, /} and
    DivisionByZeroError for "/" with a zero operand. The zero check runs
    before any arithmetic.
    """
    op = Operation.parse(operation)
    parent_value = float(parent_value)
    operand = float(operand)
    if op is Operation.DIVIDE and operand == 0:
        raise DivisionByZeroError()
    return _OPERATORS[op](parent_value, operand)


def build_forest(
    records: Iterable[CalculationRecord],
    root_ids: Collection[int] | None = None,
) -> list[TreeNode]:
    """
    Rebuild nested trees from flat records in two passes.

    Roots come out in input order and children keep the input order of their
    records; callers pre-sort by created_at when chronology matters. A record
    whose parent is not in the input (an orphan) is left out of the result.
    Ids in ``root_ids`` are treated as roots even if their parent_id is set.
    """
    records = list(records)
    forced_roots = set(root_ids or ())
    nodes = {record.id: TreeNode(record) for record in records}

    roots: list[TreeNode] = []
    for record in records:
        node = nodes[record.id]
        if record.parent_id is None or record.id in forced_roots:
            roots.append(node)
            continue
        parent = nodes.get(record.parent_id)
        if parent is not None:
            parent.children.append(node)
    return roots


def flatten_forest(roots: Iterable[TreeNode]) -> Iterator[CalculationRecord]:
    """Yield records of a forest in pre-order."""
    stack = list(reversed(list(roots)))
    while stack:
        node = stack.pop()
        yield node.record
        stack.extend(reversed(node.children))


def resolve_root(
    node_id: int,
    fetch_by_id: Callable[[int], CalculationRecord | None],
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> int | None:
    """
    Return the id of the top-most ancestor of ``node_id``.

    Returns None if ``node_id`` itself does not exist. If an ancestor is
    missing (broken chain), the last record that could be fetched is taken
    as the root. Raises CorruptTreeError after ``max_depth`` steps or when an
    id repeats.
    """
    current = fetch_by_id(node_id)
    if current is None:
        return None

    seen = {current.id}
    steps = 0
    while current.parent_id is not None:
        steps += 1
        if steps > max_depth:
            raise CorruptTreeError(node_id, f"ancestor chain longer than {max_depth}")
        parent = fetch_by_id(current.parent_id)
        if parent is None:
            break
        if parent.id in seen:
            raise CorruptTreeError(node_id, f"cycle through id={parent.id}")
        seen.add(parent.id)
        current = parent
    return current.id
