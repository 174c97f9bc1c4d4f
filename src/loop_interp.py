from __future__ import annotations

import logging
import operator
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Callable

import numpy as np

from loop_ir import Block, Compute, Function, Loop, Reduce, Stmt
from tensor_ir import (
    Cast,
    DimExpr,
    DType,
    Op,
    OpKind,
    ReduceOp,
    ScalarConst,
    ScalarExpr,
    Symbol,
    Tensor,
    TensorComputeDef,
    TensorInput,
)
from tensor_to_loop import lower_tensor_to_loop


logger = logging.getLogger(__name__)

_NP_DTYPES: dict[DType, type[np.generic]] = {
    DType.FLOAT32: np.float32,
    DType.FLOAT64: np.float64,
    DType.INT32: np.int32,
    DType.INT64: np.int64,
    DType.BOOL: np.bool_,
}

_BINARY_OPS: dict[OpKind, Callable[[np.generic, np.generic], np.generic]] = {
    OpKind.ADD: operator.add,
    OpKind.SUB: operator.sub,
    OpKind.MUL: operator.mul,
    OpKind.DIV: operator.truediv,
}

_REDUCERS: dict[ReduceOp, Callable[[np.generic, np.generic], np.generic]] = {
    ReduceOp.SUM: operator.add,
    ReduceOp.PROD: operator.mul,
    ReduceOp.MAX: np.maximum,
    ReduceOp.MIN: np.minimum,
}


@dataclass
class RunConfig:
    check_dtypes: bool = True
    sizes: Mapping[str, int] = field(default_factory=dict)
    copy_inputs: bool = False


def run_compute(
    compute_def: TensorComputeDef, *, inputs: dict[str, np.ndarray], config: RunConfig | None = None
) -> np.ndarray:
    func = lower_tensor_to_loop([compute_def])
    return run_function(func, inputs=inputs, config=config)[compute_def.tensor.name]


def run_function(
    func: Function,
    *,
    inputs: dict[str, np.ndarray],
    outputs: dict[str, np.ndarray] | None = None,
    config: RunConfig | None = None,
) -> dict[str, np.ndarray]:
    cfg = config or RunConfig()
    output_names = {tensor.name for tensor in func.outputs}
    for tensor in func.inputs:
        if tensor.name in output_names:
            raise ValueError(f"Input tensor '{tensor.name}' has the same name as an output of {func.name}.")

    env: dict[Symbol, int] = {Symbol(name): size for name, size in cfg.sizes.items()}
    arrays: dict[str, np.ndarray] = {}

    for tensor in func.inputs:
        arr = inputs.get(tensor.name)
        if arr is None:
            raise ValueError(f"Missing buffer for tensor '{tensor.name}'")
        arr = np.array(arr, copy=True) if cfg.copy_inputs else np.asarray(arr)
        if cfg.check_dtypes:
            _ensure_dtype(tensor, arr)
        _bind_symbols(tensor, arr, env)
        arrays[tensor.name] = arr
    for tensor in func.inputs:
        _ensure_shape(tensor, arrays[tensor.name], env)
    if env:
        logger.debug("Running %s with %s", func.name, {sym.name: size for sym, size in env.items()})

    output_buffers = dict(outputs) if outputs else {}
    for tensor in func.outputs:
        arr = output_buffers.get(tensor.name)
        if arr is None:
            arr = np.zeros(_tensor_shape(tensor, env), dtype=_np_dtype(tensor.dtype))
        else:
            if cfg.check_dtypes:
                _ensure_dtype(tensor, arr)
            _ensure_shape(tensor, arr, env)
        arrays[tensor.name] = arr

    _exec_stmts(func.body.stmts, arrays, env)
    return {tensor.name: arrays[tensor.name] for tensor in func.outputs}


def _exec_stmts(stmts: list[Stmt], arrays: dict[str, np.ndarray], env: dict[Symbol, int]) -> None:
    for stmt in stmts:
        if isinstance(stmt, Loop):
            lo = _eval_dim(stmt.domain.lower, env)
            hi = _eval_dim(stmt.domain.upper, env)
            for value in range(lo, hi, stmt.step):
                env[stmt.iter_var] = value
                _exec_stmts(stmt.body, arrays, env)
            env.pop(stmt.iter_var, None)
        elif isinstance(stmt, Compute):
            idx = _eval_indices(stmt.write.indices, env)
            arrays[stmt.write.tensor.name][idx] = _eval_expr(stmt.expr, arrays, env)
        elif isinstance(stmt, Reduce):
            target = arrays[stmt.write.tensor.name]
            idx = _eval_indices(stmt.write.indices, env)
            combine = _REDUCERS.get(stmt.reducer)
            if combine is None:
                raise NotImplementedError(f"Reducer {stmt.reducer} not supported")
            target[idx] = combine(target[idx], _eval_expr(stmt.value, arrays, env))
        elif isinstance(stmt, Block):
            _exec_stmts(stmt.stmts, arrays, env)
        else:
            raise NotImplementedError(type(stmt))


def _eval_expr(expr: ScalarExpr, arrays: dict[str, np.ndarray], env: dict[Symbol, int]) -> np.generic:
    if isinstance(expr, TensorInput):
        return arrays[expr.tensor.name][_eval_indices(expr.indices, env)]
    elif isinstance(expr, ScalarConst):
        return _np_dtype(expr.dtype)(expr.value)
    elif isinstance(expr, Cast):
        return _np_dtype(expr.dtype)(_eval_expr(expr.operand, arrays, env))
    elif isinstance(expr, Op):
        lhs = _eval_expr(expr.operands[0], arrays, env)
        rhs = _eval_expr(expr.operands[1], arrays, env)
        return _BINARY_OPS[expr.kind](lhs, rhs)
    raise NotImplementedError(type(expr))


def _eval_indices(indices: tuple[DimExpr, ...], env: Mapping[Symbol, int]) -> tuple[int, ...]:
    return tuple(_eval_dim(idx, env) for idx in indices)


def _eval_dim(expr: DimExpr, env: Mapping[Symbol, int]) -> int:
    total = expr.base
    for sym, coeff in expr.terms.items():
        if sym not in env:
            raise ValueError(f"Symbol {sym.name} is unbound.")
        total += coeff * env[sym]
    return total


def _bind_symbols(tensor: Tensor, arr: np.ndarray, env: dict[Symbol, int]) -> None:
    if arr.ndim != tensor.rank:
        raise ValueError(f"Rank mismatch for tensor {tensor.name}: expected {tensor.rank}, got {arr.ndim}")
    for dim, size in zip(tensor.shape, arr.shape):
        terms = [(sym, coeff) for sym, coeff in dim.terms.items() if coeff]
        # only plain `n` dims bind; affine ones are checked afterwards
        if dim.base == 0 and len(terms) == 1 and terms[0][1] == 1:
            sym = terms[0][0]
            bound = env.setdefault(sym, size)
            if bound != size:
                raise ValueError(f"Symbol {sym.name} bound to {bound} but tensor {tensor.name} has {size}")


def _ensure_shape(tensor: Tensor, arr: np.ndarray, env: Mapping[Symbol, int]) -> None:
    shape = _tensor_shape(tensor, env)
    if tuple(arr.shape) != shape:
        raise ValueError(f"Shape mismatch for tensor {tensor.name}: expected {shape}, got {tuple(arr.shape)}")


def _ensure_dtype(tensor: Tensor, arr: np.ndarray) -> None:
    expected = np.dtype(_np_dtype(tensor.dtype))
    if arr.dtype != expected:
        raise TypeError(f"Expected {expected} array for tensor {tensor.name}, got {arr.dtype}")


def _tensor_shape(tensor: Tensor, env: Mapping[Symbol, int]) -> tuple[int, ...]:
    return tuple(_eval_dim(d, env) for d in tensor.shape)


def _np_dtype(dtype: DType) -> type[np.generic]:
    np_dtype = _NP_DTYPES.get(dtype)
    if np_dtype is None:
        raise NotImplementedError(f"DType {dtype} not supported")
    return np_dtype
