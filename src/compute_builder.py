from __future__ import annotations

from collections.abc import Callable, Sequence

from errors import InternalInconsistencyError, InvalidArgumentError
from tensor_ir import (
    Cast,
    DimExpr,
    DimRange,
    DType,
    Op,
    ReduceOp,
    Reduction,
    ScalarConst,
    ScalarExpr,
    Symbol,
    Tensor,
    TensorComputeDef,
    TensorInput,
)


Constant = ScalarConst | bool | int | float
Value = Tensor | Constant
BodyFn = Callable[[Sequence[Symbol]], ScalarExpr]

_PROMOTION_ORDER = (DType.BOOL, DType.INT32, DType.INT64, DType.FLOAT32, DType.FLOAT64)

_INT_LIMITS: dict[DType, tuple[int, int]] = {
    DType.BOOL: (0, 1),
    DType.INT32: (-(2**31), 2**31 - 1),
    DType.INT64: (-(2**63), 2**63 - 1),
}


def value_shape(value: Value) -> tuple[DimExpr, ...]:
    if isinstance(value, Tensor):
        return value.shape
    if isinstance(value, (ScalarConst, bool, int, float)):
        return ()
    raise InvalidArgumentError(f"Cannot take the shape of {type(value).__name__}.")


def value_dtype(value: Value) -> DType:
    if isinstance(value, Tensor):
        return value.dtype
    return _as_const(value).dtype


def tensor_or_constant(value: Value, indices: Sequence[DimExpr]) -> ScalarExpr:
    if isinstance(value, Tensor):
        if len(indices) != value.rank:
            raise InternalInconsistencyError(
                f"Tensor {value.name} has rank {value.rank} but was addressed with {len(indices)} indices."
            )
        return TensorInput(tensor=value, indices=tuple(indices))
    if indices:
        raise InternalInconsistencyError(f"Constants take no indices, got {len(indices)}.")
    return _as_const(value)


def make_cast(dtype: DType, expr: ScalarExpr) -> Cast:
    return Cast(dtype=dtype, operand=expr)


def expr_dtype(expr: ScalarExpr) -> DType:
    """Natural element type of a scalar expression."""
    if isinstance(expr, TensorInput):
        return expr.tensor.dtype
    if isinstance(expr, (ScalarConst, Cast)):
        return expr.dtype
    if isinstance(expr, Op):
        return max((expr_dtype(op) for op in expr.operands), key=_PROMOTION_ORDER.index)
    raise NotImplementedError(f"Cannot infer dtype of {type(expr).__name__}.")


def reducer_identity(reducer: ReduceOp, dtype: DType) -> ScalarConst:
    if reducer == ReduceOp.SUM:
        return ScalarConst(value=0, dtype=dtype)
    if reducer == ReduceOp.PROD:
        return ScalarConst(value=1, dtype=dtype)
    if reducer in (ReduceOp.MAX, ReduceOp.MIN):
        if dtype.is_floating:
            value = float("-inf") if reducer == ReduceOp.MAX else float("inf")
        else:
            lo, hi = _INT_LIMITS[dtype]
            value = lo if reducer == ReduceOp.MAX else hi
        return ScalarConst(value=value, dtype=dtype)
    raise NotImplementedError(f"Reducer {reducer} not supported")


def reduce(
    name: str,
    output_dims: Sequence[DimExpr],
    reducer: ReduceOp,
    body_fn: BodyFn,
    reduction_dims: Sequence[DimExpr],
    dtype: DType,
) -> TensorComputeDef:
    """Build a reduction compute definition.

    One loop symbol is created per output dim and per reduction dim, and
    ``body_fn`` is called once with the output symbols followed by the
    reduction symbols. The returned expression is what each output point
    accumulates with ``reducer``, starting from the reducer's identity.
    """
    output_axes = tuple(Symbol(f"{name}_i{k}") for k in range(len(output_dims)))
    reduction_axes = tuple(Symbol(f"{name}_r{k}") for k in range(len(reduction_dims)))

    body = body_fn((*output_axes, *reduction_axes))
    if not isinstance(body, ScalarExpr):
        raise TypeError(f"Reduction body must be a scalar expression, got {type(body).__name__}.")

    reduction = Reduction(
        reducer=reducer,
        axes=reduction_axes,
        body=body,
        init=reducer_identity(reducer, dtype),
        domain=_domain(reduction_axes, reduction_dims),
    )
    return TensorComputeDef(
        name=name,
        tensor=Tensor(name=name, shape=tuple(output_dims), dtype=dtype),
        axes=output_axes,
        domain=_domain(output_axes, output_dims),
        expr=reduction,
    )


def _domain(axes: Sequence[Symbol], sizes: Sequence[DimExpr]) -> dict[Symbol, DimRange]:
    return {axis: DimRange(lower=DimExpr(base=0), upper=size) for axis, size in zip(axes, sizes)}


def _as_const(value: Constant) -> ScalarConst:
    if isinstance(value, ScalarConst):
        return value
    # bool is a subclass of int
    if isinstance(value, bool):
        return ScalarConst(value=value, dtype=DType.BOOL)
    if isinstance(value, int):
        return ScalarConst(value=value, dtype=DType.INT64)
    if isinstance(value, float):
        return ScalarConst(value=value, dtype=DType.FLOAT32)
    raise InvalidArgumentError(f"Expected a tensor or scalar constant, got {type(value).__name__}.")
