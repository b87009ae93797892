from __future__ import annotations

from dataclasses import replace

import structlog

from engine import (
    DEFAULT_MAX_DEPTH,
    CalculationRecord,
    Operation,
    TreeNode,
    apply_operation,
    build_forest,
    resolve_root,
)
from errors import ParentNotFoundError
from store import CalculationStore

log = structlog.get_logger("calc-service")


class CalculationService:
    """
    Create calculations and answer tree queries against a record store.

    Holds no state besides the injected store; every call builds its own
    lookup structures and discards them on return.
    """

    def __init__(self, store: CalculationStore, max_depth: int = DEFAULT_MAX_DEPTH):
        self._store = store
        self._max_depth = max_depth

    def create_root(self, user_id: int, value: float) -> CalculationRecord:
        created = self._store.insert(user_id, float(value))
        log.info("calculation_created", calculation_id=created.id, kind="root")
        return self._denormalized(created)

    def add_operation(
        self,
        user_id: int,
        parent_id: int,
        operation: Operation | str,
        operand: float,
    ) -> CalculationRecord:
        parent = self._store.fetch_by_id(parent_id)
        if parent is None:
            raise ParentNotFoundError(parent_id)

        op = Operation.parse(operation)
        value = apply_operation(op, parent.value, operand)

        created = self._store.insert(user_id, value, parent.id, op, float(operand))
        log.info(
            "calculation_created",
            calculation_id=created.id,
            kind="child",
            parent_id=parent.id,
            operation=op.value,
        )
        return self._denormalized(created)

    def get_tree(self, calc_id: int) -> TreeNode | None:
        root_id = resolve_root(calc_id, self._store.fetch_by_id, self._max_depth)
        if root_id is None:
            return None
        records = self._store.fetch_subtree(root_id)
        trees = build_forest(records, root_ids=(root_id,))
        return trees[0] if trees else None

    def get_all_trees(self) -> list[TreeNode]:
        return build_forest(self._store.fetch_all_with_usernames())

    def _denormalized(self, created: CalculationRecord) -> CalculationRecord:
        fetched = self._store.fetch_by_id(created.id)
        if fetched is not None:
            return fetched
        return replace(created, username=created.username or "")
