"""
Pydantic schemas for calc-service requests and responses.

JSON uses camelCase field names (userId, parentId, createdAt).
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from engine import CalculationRecord, Operation, TreeNode
from users import User


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------- requests ----------
class CreateCalculationRequest(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    value: float = Field(..., description="Starting number of a new tree")


class RespondRequest(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    # validated by the engine so unknown symbols map to 400, not 422
    operation: str = Field(..., max_length=8, description="One of +, -, *, /")
    operand: float


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6, max_length=128)


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


# ---------- responses ----------
class CalculationView(CamelModel):
    id: int
    user_id: int
    username: str
    parent_id: int | None = None
    value: float
    operation: Operation | None = None
    operand: float | None = None
    created_at: datetime | None = None

    @classmethod
    def from_record(cls, record: CalculationRecord) -> CalculationView:
        return cls(
            id=record.id,
            user_id=record.user_id,
            username=record.username or "",
            parent_id=record.parent_id,
            value=record.value,
            operation=record.operation,
            operand=record.operand,
            created_at=record.created_at,
        )


class CalculationTreeView(CalculationView):
    """
    Response shape of the tree routes, documented in OpenAPI.

    Bodies are written by render_trees/render_tree rather than serialized
    through this model: a chain may be as deep as MAX_TREE_DEPTH, past the
    nesting pydantic-core and the recursion limit allow.
    """

    children: list[CalculationTreeView] = Field(default_factory=list)


def _push_siblings(stack: list, nodes: list[TreeNode]) -> None:
    # reversed so the first sibling is popped first
    for i in range(len(nodes) - 1, -1, -1):
        stack.append(nodes[i])
        if i:
            stack.append(",")


def render_trees(roots: list[TreeNode]) -> str:
    """JSON array of trees, walked with an explicit stack."""
    parts = ["["]
    stack: list[TreeNode | str] = ["]"]
    _push_siblings(stack, roots)
    while stack:
        item = stack.pop()
        if isinstance(item, str):
            parts.append(item)
            continue
        flat = CalculationView.from_record(item.record).model_dump_json(by_alias=True)
        parts.append(flat[:-1] + ',"children":[')
        stack.append("]}")
        _push_siblings(stack, item.children)
    return "".join(parts)


def render_tree(root: TreeNode) -> str:
    return render_trees([root])[1:-1]


class UserView(CamelModel):
    id: int
    username: str
    created_at: datetime | None = None

    @classmethod
    def from_user(cls, user: User) -> UserView:
        return cls(id=user.id, username=user.username, created_at=user.created_at)


class AuthResponse(UserView):
    api_key: str

    @classmethod
    def from_user(cls, user: User) -> AuthResponse:
        return cls(
            id=user.id,
            username=user.username,
            created_at=user.created_at,
            api_key=user.api_key,
        )
