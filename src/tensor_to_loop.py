import logging
from collections.abc import Mapping, Sequence

from tensor_ir import (
    Cast,
    DimExpr,
    DimRange,
    Op,
    Reduction,
    ScalarExpr,
    Symbol,
    Tensor,
    TensorComputeDef,
    TensorInput,
    TensorExpr,
    index_of,
)
from loop_ir import AccessType, Block, Compute, Function, Loop, Reduce, Stmt, TensorAccess, loop_depth


logger = logging.getLogger(__name__)


def lower_tensor_to_loop(defs: Sequence[TensorComputeDef]) -> Function:
    if not defs:
        raise ValueError("At least one tensor compute def is required.")
    if len(defs) > 1:
        raise NotImplementedError("Multiple compute definitions are not supported yet.")

    compute_def = defs[0]
    if len(compute_def.axes) != compute_def.tensor.rank:
        raise ValueError(
            f"Compute {compute_def.name} has {len(compute_def.axes)} axes for a rank-{compute_def.tensor.rank} output."
        )

    if isinstance(compute_def.expr, Reduction):
        func = _lower_reduction(compute_def)
    else:
        func = _lower_compute(compute_def)
    logger.debug("Lowered %s to a loop nest of depth %d", func.name, loop_depth(func))
    return func


def _lower_compute(compute_def: TensorComputeDef) -> Function:
    compute = Compute(
        name=compute_def.name,
        write=_write_access(compute_def),
        expr=_extract_scalar_expr(compute_def.expr),
    )

    body = _wrap_loops([compute], compute_def.axes, compute_def.domain)
    return Function(
        name=compute_def.name,
        inputs=_collect_inputs(compute_def.expr, compute_def.tensor),
        outputs=[compute_def.tensor],
        body=Block(stmts=body),
        symbol_bounds=_symbol_bounds(compute_def.axes, compute_def.domain),
    )


def _lower_reduction(compute_def: TensorComputeDef) -> Function:
    reduction = compute_def.expr
    assert isinstance(reduction, Reduction)

    init_compute = Compute(
        name=f"{compute_def.name}_init",
        write=_write_access(compute_def),
        expr=reduction.init,
    )
    reduce_stmt = Reduce(
        name=compute_def.name,
        write=_write_access(compute_def),
        value=_extract_scalar_expr(reduction.body),
        reducer=reduction.reducer,
    )

    reduction_body = _wrap_loops([reduce_stmt], reduction.axes, reduction.domain)
    output_body = _wrap_loops([init_compute, *reduction_body], compute_def.axes, compute_def.domain)

    symbol_bounds = _symbol_bounds(compute_def.axes, compute_def.domain)
    symbol_bounds.update(_symbol_bounds(reduction.axes, reduction.domain))
    return Function(
        name=compute_def.name,
        inputs=_collect_inputs(reduction.body, compute_def.tensor),
        outputs=[compute_def.tensor],
        body=Block(stmts=output_body),
        symbol_bounds=symbol_bounds,
    )


def _write_access(compute_def: TensorComputeDef) -> TensorAccess:
    return TensorAccess(
        tensor=compute_def.tensor,
        indices=tuple(index_of(axis) for axis in compute_def.axes),
        access_type=AccessType.WRITE,
    )


def _wrap_loops(body: list[Stmt], axes: Sequence[Symbol], domain: Mapping[Symbol, DimRange]) -> list[Stmt]:
    for axis in reversed(axes):
        if axis not in domain:
            raise ValueError(f"Domain for axis {axis.name} is missing.")
        body = [Loop(iter_var=axis, domain=domain[axis], step=1, body=body)]
    return body


def _symbol_bounds(
    axes: Sequence[Symbol], domain: Mapping[Symbol, DimRange]
) -> dict[Symbol, tuple[int, int | None]]:
    bounds: dict[Symbol, tuple[int, int | None]] = {}
    for axis in axes:
        rng = domain[axis]
        lower = _dim_expr_to_int(rng.lower)
        if lower is None:
            raise NotImplementedError("Symbolic lower bounds are not supported yet.")
        bounds[axis] = (lower, _dim_expr_to_int(rng.upper))
    return bounds


def _collect_inputs(expr: TensorExpr, output_tensor: Tensor) -> list[Tensor]:
    tensors: list[Tensor] = []
    seen_names: set[str] = set()

    def visit(node: TensorExpr):
        if isinstance(node, TensorInput):
            tensor = node.tensor
            if tensor.name == output_tensor.name:
                raise ValueError(f"Input tensor '{tensor.name}' has the same name as the output.")
            if tensor.name not in seen_names:
                seen_names.add(tensor.name)
                tensors.append(tensor)
        elif isinstance(node, Op):
            for operand in node.operands:
                visit(operand)
        elif isinstance(node, Cast):
            visit(node.operand)
        elif isinstance(node, Reduction):
            visit(node.body)

    visit(expr)
    return tensors


def _dim_expr_to_int(expr: DimExpr) -> int | None:
    if not expr.is_constant:
        return None
    return expr.base


def _extract_scalar_expr(expr: TensorExpr) -> ScalarExpr:
    if isinstance(expr, ScalarExpr):
        return expr
    raise NotImplementedError(f"Cannot extract scalar expression from {type(expr).__name__}.")
