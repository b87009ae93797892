import json
import math

from pydantic import TypeAdapter

from engine import CalculationRecord, Operation, build_forest
from schemas import CalculationTreeView, render_tree, render_trees


def rec(id, parent_id=None, value=1.0):
    return CalculationRecord(
        id=id,
        user_id=7,
        value=value,
        parent_id=parent_id,
        operation=Operation.ADD if parent_id else None,
        operand=1.0 if parent_id else None,
        username="carol",
    )


def test_render_trees_empty():
    assert render_trees([]) == "[]"


def test_rendered_trees_match_response_model():
    forest = build_forest([rec(1), rec(2, 1), rec(3), rec(4, 1), rec(5, 2)])

    views = TypeAdapter(list[CalculationTreeView]).validate_json(render_trees(forest))

    assert [v.id for v in views] == [1, 3]
    assert [c.id for c in views[0].children] == [2, 4]
    assert [c.id for c in views[0].children[0].children] == [5]
    assert views[0].children[0].operation is Operation.ADD
    assert views[1].children == []


def test_render_tree_uses_camel_case():
    (root,) = build_forest([rec(1), rec(2, 1)])
    body = json.loads(render_tree(root))

    assert body["userId"] == 7
    assert body["username"] == "carol"
    assert body["parentId"] is None
    assert body["children"][0]["parentId"] == 1
    assert body["children"][0]["children"] == []


def test_render_tree_infinite_value_is_null():
    (root,) = build_forest([rec(1, value=1e308), rec(2, 1, value=math.inf)])
    assert json.loads(render_tree(root))["children"][0]["value"] is None
