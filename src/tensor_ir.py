from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum, auto


@dataclass(frozen=True)
class Symbol:
    name: str


@dataclass(frozen=True)
class DimExpr:
    base: int = 0
    terms: dict[Symbol, int] = field(default_factory=dict)

    @property
    def is_constant(self) -> bool:
        return not any(self.terms.values())


@dataclass(frozen=True)
class DimRange:
    lower: DimExpr
    upper: DimExpr


def dim(base: int = 0, **coeffs: int) -> DimExpr:
    return DimExpr(base, {Symbol(name): coeff for name, coeff in coeffs.items()})


def index_of(symbol: Symbol) -> DimExpr:
    return DimExpr(base=0, terms={symbol: 1})


class OpKind(Enum):
    ADD = auto()
    SUB = auto()
    MUL = auto()
    DIV = auto()


class DType(Enum):
    FLOAT32 = auto()
    FLOAT64 = auto()
    INT32 = auto()
    INT64 = auto()
    BOOL = auto()

    @property
    def is_floating(self) -> bool:
        return self in (DType.FLOAT32, DType.FLOAT64)


@dataclass(frozen=True)
class Tensor:
    name: str
    shape: tuple[DimExpr, ...]
    dtype: DType

    @property
    def rank(self) -> int:
        return len(self.shape)


class TensorExpr:
    pass


class ScalarExpr(TensorExpr):
    pass


@dataclass(frozen=True)
class TensorInput(ScalarExpr):
    tensor: Tensor
    indices: tuple[DimExpr, ...]


@dataclass(frozen=True)
class ScalarConst(ScalarExpr):
    value: float
    dtype: DType


@dataclass(frozen=True)
class Op(ScalarExpr):
    kind: OpKind
    operands: tuple[ScalarExpr, ...]


@dataclass(frozen=True)
class Cast(ScalarExpr):
    dtype: DType
    operand: ScalarExpr


class ReduceOp(Enum):
    SUM = auto()
    MAX = auto()
    MIN = auto()
    PROD = auto()


@dataclass(frozen=True)
class Reduction(TensorExpr):
    reducer: ReduceOp
    axes: tuple[Symbol, ...]
    body: TensorExpr
    init: ScalarExpr
    domain: Mapping[Symbol, DimRange]


@dataclass(frozen=True)
class TensorComputeDef:
    name: str
    tensor: Tensor
    axes: tuple[Symbol, ...]
    domain: Mapping[Symbol, DimRange]
    expr: TensorExpr
