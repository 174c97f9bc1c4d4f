import pytest

from compute_builder import (
    expr_dtype,
    make_cast,
    reduce,
    reducer_identity,
    tensor_or_constant,
    value_dtype,
    value_shape,
)
from errors import InternalInconsistencyError, InvalidArgumentError
from tensor_ir import (
    Cast,
    DType,
    DimExpr,
    DimRange,
    Op,
    OpKind,
    ReduceOp,
    Reduction,
    ScalarConst,
    Symbol,
    Tensor,
    TensorInput,
    index_of,
)


def _tensor(name: str = "A", dtype: DType = DType.FLOAT32) -> Tensor:
    return Tensor(name=name, shape=(DimExpr(base=2), DimExpr(base=3)), dtype=dtype)


def test_value_shape():
    a = _tensor()
    assert value_shape(a) == a.shape
    assert value_shape(ScalarConst(value=1.0, dtype=DType.FLOAT32)) == ()
    assert value_shape(3) == ()
    assert value_shape(True) == ()


def test_value_shape_rejects_other_values():
    with pytest.raises(InvalidArgumentError):
        value_shape([1, 2])  # type: ignore[arg-type]


def test_value_dtype_of_python_scalars():
    assert value_dtype(True) == DType.BOOL
    assert value_dtype(3) == DType.INT64
    assert value_dtype(2.5) == DType.FLOAT32
    assert value_dtype(_tensor(dtype=DType.INT32)) == DType.INT32


def test_tensor_or_constant_tensor():
    a = _tensor()
    i, j = Symbol("i"), Symbol("j")
    indices = [index_of(i), index_of(j)]
    assert tensor_or_constant(a, indices) == TensorInput(tensor=a, indices=tuple(indices))


def test_tensor_or_constant_constant():
    assert tensor_or_constant(4, []) == ScalarConst(value=4, dtype=DType.INT64)


def test_tensor_or_constant_index_count():
    with pytest.raises(InternalInconsistencyError, match="rank 2"):
        tensor_or_constant(_tensor(), [index_of(Symbol("i"))])
    with pytest.raises(InternalInconsistencyError):
        tensor_or_constant(1.0, [index_of(Symbol("i"))])


def test_make_cast():
    const = ScalarConst(value=1, dtype=DType.INT32)
    assert make_cast(DType.FLOAT64, const) == Cast(dtype=DType.FLOAT64, operand=const)


def test_expr_dtype_promotes_operands():
    a = TensorInput(tensor=_tensor(dtype=DType.INT32), indices=(DimExpr(), DimExpr()))
    b = TensorInput(tensor=_tensor("B", dtype=DType.FLOAT32), indices=(DimExpr(), DimExpr()))
    assert expr_dtype(a) == DType.INT32
    assert expr_dtype(Op(kind=OpKind.ADD, operands=(a, b))) == DType.FLOAT32
    assert expr_dtype(Cast(dtype=DType.BOOL, operand=b)) == DType.BOOL


@pytest.mark.parametrize(
    ("reducer", "dtype", "value"),
    [
        (ReduceOp.SUM, DType.FLOAT32, 0),
        (ReduceOp.PROD, DType.INT64, 1),
        (ReduceOp.MAX, DType.FLOAT32, float("-inf")),
        (ReduceOp.MIN, DType.FLOAT64, float("inf")),
        (ReduceOp.MAX, DType.INT32, -(2**31)),
        (ReduceOp.MIN, DType.INT64, 2**63 - 1),
    ],
)
def test_reducer_identity(reducer: ReduceOp, dtype: DType, value: float):
    assert reducer_identity(reducer, dtype) == ScalarConst(value=value, dtype=dtype)


def test_reduce_binds_output_then_reduction_symbols():
    a = _tensor()
    seen: list[tuple[Symbol, ...]] = []

    def body(indices):
        seen.append(tuple(indices))
        return TensorInput(tensor=a, indices=tuple(index_of(s) for s in indices))

    compute_def = reduce("row_sum", (DimExpr(base=2),), ReduceOp.SUM, body, (DimExpr(base=3),), DType.FLOAT32)

    i0, r0 = Symbol("row_sum_i0"), Symbol("row_sum_r0")
    assert seen == [(i0, r0)]
    assert compute_def.axes == (i0,)
    assert compute_def.tensor == Tensor(name="row_sum", shape=(DimExpr(base=2),), dtype=DType.FLOAT32)
    assert compute_def.domain == {i0: DimRange(lower=DimExpr(base=0), upper=DimExpr(base=2))}
    assert compute_def.expr == Reduction(
        reducer=ReduceOp.SUM,
        axes=(r0,),
        body=TensorInput(tensor=a, indices=(index_of(i0), index_of(r0))),
        init=ScalarConst(value=0, dtype=DType.FLOAT32),
        domain={r0: DimRange(lower=DimExpr(base=0), upper=DimExpr(base=3))},
    )


def test_reduce_rejects_non_scalar_body():
    with pytest.raises(TypeError):
        reduce("bad", (), ReduceOp.SUM, lambda indices: _tensor(), (), DType.FLOAT32)  # type: ignore[arg-type,return-value]
