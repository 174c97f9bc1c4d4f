"""Lowering of ``sum`` over a set of axes into a reduction compute definition.

The axis argument arrives in one of three forms: the reduce-all sentinel, an
explicit list of signed axes, or nothing at all. All of them are canonicalized
to a sorted, duplicate-free tuple of axes before the output and reduction
shapes are built, and the index mapping relies on that ordering when it
places loop variables back into input positions.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from compute_builder import Value, expr_dtype, make_cast, reduce, tensor_or_constant, value_dtype, value_shape
from errors import InternalInconsistencyError, InvalidArgumentError
from tensor_ir import DimExpr, DType, ReduceOp, ScalarExpr, Symbol, TensorComputeDef, index_of


logger = logging.getLogger(__name__)

_MAX_SUM_ARGS = 4


@dataclass(frozen=True)
class ReduceAll:
    """Reduce over every axis.

    An explicit empty dim list, distinct from :class:`Absent` (no dim
    argument at all), so it must not carry any items.
    """

    items: tuple[object, ...] = ()


@dataclass(frozen=True)
class ExplicitAxes:
    axes: tuple[int, ...]


@dataclass(frozen=True)
class Absent:
    pass


AxisSpec = ReduceAll | ExplicitAxes | Absent


@dataclass(frozen=True)
class ReductionSpec:
    axes: tuple[int, ...]
    keepdim: bool = False
    output_type: DType | None = None


def canonicalize_axes(spec: AxisSpec, rank: int) -> tuple[int, ...]:
    if isinstance(spec, ReduceAll):
        if spec.items:
            raise InvalidArgumentError(f"Reduce-all sentinel must be empty, got {len(spec.items)} items.")
        return tuple(range(rank))
    if isinstance(spec, Absent):
        return tuple(range(rank))
    if isinstance(spec, ExplicitAxes):
        for axis in spec.axes:
            if isinstance(axis, bool) or not isinstance(axis, int):
                raise InvalidArgumentError(f"Axis must be an int, got {axis!r}.")
        if rank == 0:
            return ()
        # wrap, then sort, then dedup
        return tuple(sorted(set(_wrap_axis(axis, rank) for axis in spec.axes)))
    raise InvalidArgumentError(f"Unsupported axis specification {type(spec).__name__}.")


def _wrap_axis(axis: int, rank: int) -> int:
    wrapped = axis + rank if axis < 0 else axis
    if not 0 <= wrapped < rank:
        raise InvalidArgumentError(f"Axis {axis} is out of range for rank {rank} (expected [{-rank}, {rank})).")
    return wrapped


def reduction_dims(
    shape: Sequence[DimExpr], axes: Sequence[int], keepdim: bool
) -> tuple[tuple[DimExpr, ...], tuple[DimExpr, ...]]:
    """Split ``shape`` into (output dims, reduction dims), keeping source order."""
    rank = len(shape)
    if len(axes) > rank:
        raise InternalInconsistencyError(f"{len(axes)} axes given for rank {rank}.")

    axis_set = set(axes)
    output: list[DimExpr] = []
    for d, size in enumerate(shape):
        if d not in axis_set:
            output.append(size)
        elif keepdim:
            output.append(DimExpr(base=1))
    reduced = tuple(shape[axis] for axis in axes)
    return tuple(output), reduced


@dataclass(frozen=True)
class IndexMapping:
    """Maps reduction loop variables onto input indices.

    Called with the output loop variables followed by the reduction loop
    variables. Keepdim placeholders are squeezed out first; the remaining
    outer variables fill the non-axis positions left to right and the
    reduction variables go to ``axes[j]``.
    """

    value: Value
    axes: tuple[int, ...]
    keepdim: bool = False
    output_type: DType | None = None
    rank: int = field(init=False)
    outer_slots: tuple[int, ...] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        rank = len(value_shape(self.value))
        if len(self.axes) > rank:
            raise InternalInconsistencyError(f"{len(self.axes)} axes given for rank {rank}.")
        if self.axes != tuple(sorted(set(self.axes))) or any(not 0 <= axis < rank for axis in self.axes):
            raise InternalInconsistencyError(
                f"Axes {self.axes} must be sorted, unique and within [0, {rank})."
            )
        object.__setattr__(self, "rank", rank)
        object.__setattr__(self, "outer_slots", tuple(d for d in range(rank) if d not in self.axes))

    def squeeze(self, indices: Sequence[Symbol | DimExpr]) -> tuple[Symbol | DimExpr, ...]:
        if not self.keepdim:
            return tuple(indices)
        return tuple(var for pos, var in enumerate(indices) if pos not in self.axes)

    def place(self, indices: Sequence[Symbol | DimExpr]) -> tuple[DimExpr, ...]:
        squeezed = self.squeeze(indices)
        if len(squeezed) != self.rank:
            raise InternalInconsistencyError(
                f"Expected {self.rank} index variables after squeezing, got {len(squeezed)}."
            )

        placed: list[DimExpr] = [DimExpr()] * self.rank
        num_outer = len(self.outer_slots)
        for i, slot in enumerate(self.outer_slots):
            placed[slot] = _as_index(squeezed[i])
        for j, axis in enumerate(self.axes):
            placed[axis] = _as_index(squeezed[num_outer + j])
        return tuple(placed)

    def __call__(self, indices: Sequence[Symbol | DimExpr]) -> ScalarExpr:
        indexed = tensor_or_constant(self.value, self.place(indices))
        if self.output_type is not None and self.output_type != expr_dtype(indexed):
            return make_cast(self.output_type, indexed)
        return indexed


def _as_index(var: Symbol | DimExpr) -> DimExpr:
    if isinstance(var, Symbol):
        return index_of(var)
    return var


def parse_sum_args(inputs: Sequence[object], output_type: DType | None = None) -> ReductionSpec:
    """Canonicalize the ``[self, dtype]`` or ``[self, dim, keepdim, dtype]`` argument list.

    A dtype in the argument list is used when ``output_type`` is not given;
    when both are given they must agree.
    """
    if not inputs:
        raise InvalidArgumentError("sum expects at least one argument.")
    if len(inputs) > _MAX_SUM_ARGS:
        raise InvalidArgumentError(f"sum takes at most {_MAX_SUM_ARGS} arguments, got {len(inputs)}.")

    rank = len(value_shape(inputs[0]))  # type: ignore[arg-type]
    spec: AxisSpec = Absent()
    keepdim = False
    arg_dtype: object = None
    if len(inputs) == 2:
        arg_dtype = inputs[1]
    elif len(inputs) > 2:
        spec = _axis_spec(inputs[1])
        keepdim = inputs[2]  # type: ignore[assignment]
        if not isinstance(keepdim, bool):
            raise InvalidArgumentError(f"keepdim must be a bool, got {type(keepdim).__name__}.")
        if len(inputs) == _MAX_SUM_ARGS:
            arg_dtype = inputs[3]

    if arg_dtype is not None:
        if not isinstance(arg_dtype, DType):
            raise InvalidArgumentError(f"dtype must be a DType or None, got {type(arg_dtype).__name__}.")
        if output_type is not None and output_type != arg_dtype:
            raise InvalidArgumentError(f"Conflicting dtypes: {arg_dtype} in arguments, {output_type} requested.")
        output_type = arg_dtype

    return ReductionSpec(axes=canonicalize_axes(spec, rank), keepdim=keepdim, output_type=output_type)


def _axis_spec(arg: object) -> AxisSpec:
    if isinstance(arg, (ReduceAll, ExplicitAxes, Absent)):
        return arg
    if arg is None:
        return Absent()
    if isinstance(arg, (list, tuple)):
        return ExplicitAxes(tuple(arg))
    raise InvalidArgumentError(f"dim must be an axis list, got {type(arg).__name__}.")


def compute_sum(
    inputs: Sequence[object], output_type: DType | None = None, *, name: str = "sum"
) -> TensorComputeDef:
    spec = parse_sum_args(inputs, output_type)
    value: Value = inputs[0]  # type: ignore[assignment]
    shape = value_shape(value)
    output_dims, reduced_dims = reduction_dims(shape, spec.axes, spec.keepdim)
    logger.debug(
        "Lowering %s: rank=%d axes=%s keepdim=%s output_rank=%d",
        name,
        len(shape),
        spec.axes,
        spec.keepdim,
        len(output_dims),
    )

    mapping = IndexMapping(value=value, axes=spec.axes, keepdim=spec.keepdim, output_type=spec.output_type)
    return reduce(
        name,
        output_dims,
        ReduceOp.SUM,
        mapping,
        reduced_dims,
        spec.output_type or value_dtype(value),
    )
