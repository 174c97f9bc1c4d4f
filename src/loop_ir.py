from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum, auto

from tensor_ir import DimExpr, DimRange, ReduceOp, ScalarExpr, Symbol, Tensor


class AccessType(Enum):
    READ = auto()
    WRITE = auto()


@dataclass(frozen=True)
class TensorAccess:
    tensor: Tensor
    indices: tuple[DimExpr, ...]
    access_type: AccessType


@dataclass
class Compute:
    name: str
    write: TensorAccess
    expr: ScalarExpr


@dataclass
class Reduce:
    name: str
    write: TensorAccess
    value: ScalarExpr
    reducer: ReduceOp


@dataclass
class Loop:
    iter_var: Symbol
    domain: DimRange
    step: int
    body: list["Stmt"]


@dataclass
class Block:
    stmts: list["Stmt"]


Stmt = Compute | Reduce | Loop | Block


@dataclass
class Function:
    name: str
    inputs: list[Tensor]
    outputs: list[Tensor]
    body: Block
    # upper is None when the extent is symbolic
    symbol_bounds: dict[Symbol, tuple[int, int | None]]


def walk(stmts: list[Stmt], depth: int = 0) -> Iterator[tuple[Stmt, int]]:
    """Yield every statement with its loop depth, pre-order."""
    for stmt in stmts:
        yield stmt, depth
        if isinstance(stmt, Loop):
            yield from walk(stmt.body, depth + 1)
        elif isinstance(stmt, Block):
            yield from walk(stmt.stmts, depth)


def loop_depth(func: Function) -> int:
    return max((depth for stmt, depth in walk(func.body.stmts) if not isinstance(stmt, Loop)), default=0)
