from __future__ import annotations

import numpy as np
import pytest

from shapeflow.ir import (
    DimFact,
    ShapeFact,
    TensorFact,
    TypeFact,
    UnificationError,
    ValueFact,
    parse_fact,
    parse_shape,
    shapefact,
    unify,
)

SAMPLES = [
    TypeFact(),
    TypeFact("float32"),
    DimFact.ANY,
    DimFact.STREAMED,
    DimFact.only(3),
    ShapeFact.open(),
    ShapeFact.open([1, 2]),
    ShapeFact.closed([1, None, "S"]),
    TensorFact(),
    TensorFact("int64", ShapeFact.closed([2]), ValueFact(np.array([1, 2]))),
    TensorFact("float32", ShapeFact.closed([2]), ValueFact(np.array([np.nan, 1.0], dtype=np.float32))),
]


def any_of(fact):
    if isinstance(fact, ShapeFact):
        return ShapeFact.open()
    if isinstance(fact, DimFact):
        return DimFact.ANY
    return type(fact)()


@pytest.mark.parametrize("fact", SAMPLES)
def test_unify_with_any_is_identity(fact) -> None:
    assert unify(fact, any_of(fact)) == fact
    assert unify(any_of(fact), fact) == fact


@pytest.mark.parametrize("fact", SAMPLES)
def test_unify_is_idempotent(fact) -> None:
    assert unify(fact, fact) == fact


def test_type_fact_normalizes_dtypes() -> None:
    assert TypeFact(np.float32) == TypeFact("float32")
    assert TypeFact(np.dtype("int64")).concretize() == "int64"
    assert not TypeFact().is_concrete()


def test_generic_conflict_names_both_operands() -> None:
    a, b = TypeFact("float32"), TypeFact("int32")
    with pytest.raises(UnificationError) as exc:
        a.unify(b)
    assert exc.value.code == "EUNIFY"
    assert exc.value.left == a and exc.value.right == b
    assert "float32" in str(exc.value) and "int32" in str(exc.value)


def test_value_fact_compares_contents() -> None:
    assert ValueFact([1, 2]) == ValueFact(np.array([1, 2]))
    assert ValueFact([1, 2]) != ValueFact([1, 3])
    assert ValueFact(np.array([1, 2], dtype="int32")) != ValueFact(np.array([1, 2], dtype="int64"))
    with pytest.raises(UnificationError):
        ValueFact([1, 2]).unify(ValueFact([2, 1]))


def test_streamed_dim_only_unifies_with_itself_or_any() -> None:
    assert DimFact.STREAMED.unify(DimFact.ANY) == DimFact.STREAMED
    assert DimFact.STREAMED.unify(DimFact.STREAMED) == DimFact.STREAMED
    with pytest.raises(UnificationError):
        DimFact.STREAMED.unify(DimFact.only(4))
    with pytest.raises(UnificationError):
        DimFact.only(4).unify(DimFact.only(5))


def test_streamed_dim_is_concrete_without_a_value() -> None:
    assert DimFact.STREAMED.is_concrete()
    assert DimFact.STREAMED.concretize() is None
    assert DimFact.only(0).is_concrete()
    assert not DimFact.ANY.is_concrete()


def test_open_shape_unifies_with_longer_closed_shape() -> None:
    result = ShapeFact.open([1, 2]).unify(ShapeFact.closed([1, 2, 3]))
    assert result == ShapeFact.closed([1, 2, 3])


def test_two_open_shapes_stay_open() -> None:
    result = ShapeFact.open([1]).unify(ShapeFact.open([None, 5]))
    assert result == ShapeFact.open([1, 5])


def test_closed_shapes_of_different_rank_fail() -> None:
    with pytest.raises(UnificationError) as exc:
        ShapeFact.closed([1, 2]).unify(ShapeFact.closed([1, 2, 3]))
    assert "different rank" in str(exc.value)


@pytest.mark.parametrize("other", [ShapeFact.closed([]), ShapeFact.closed([7, 7, 7]), ShapeFact.open([4])])
def test_open_empty_shape_never_fails_on_rank(other) -> None:
    assert ShapeFact.open().unify(other) == other
    assert other.unify(ShapeFact.open()) == other


def test_shape_dim_conflict_reports_shapes() -> None:
    with pytest.raises(UnificationError) as exc:
        ShapeFact.closed([1, 2]).unify(ShapeFact.closed([1, 3]))
    assert "While unifying shapes [1,2] and [1,3]" in str(exc.value)


def test_shape_unify_is_commutative() -> None:
    a = ShapeFact.open([1, None])
    b = ShapeFact.closed([None, 2, "S"])
    assert a.unify(b) == b.unify(a) == ShapeFact.closed([1, 2, "S"])


def test_shape_concretize() -> None:
    assert ShapeFact.closed([1, 2]).concretize() == [1, 2]
    assert ShapeFact.open([1, 2]).concretize() is None
    assert ShapeFact.closed([1, "S"]).concretize() is None
    assert ShapeFact.closed([1, "S"]).streamed_axis() == 1


def test_tensor_fact_unifies_components_independently() -> None:
    a = TensorFact("float32", ShapeFact.open([1]))
    b = TensorFact(shape=ShapeFact.closed([None, 3]))
    assert a.unify(b) == TensorFact("float32", ShapeFact.closed([1, 3]))
    assert a.unify(b) == b.unify(a)


def test_tensor_fact_fails_on_any_component() -> None:
    a = TensorFact("float32", ShapeFact.closed([1]))
    b = TensorFact("float32", ShapeFact.closed([2]))
    with pytest.raises(UnificationError):
        a.unify(b)


def test_tensor_fact_from_tensor() -> None:
    fact = TensorFact.from_tensor(np.zeros((2, 3), dtype=np.float32))
    assert fact.datatype == TypeFact("float32")
    assert fact.shape == ShapeFact.closed([2, 3])
    assert fact.is_concrete()
    assert not fact.without_value().is_concrete()


def test_shapefact_builder() -> None:
    assert shapefact(1, 2, ...) == ShapeFact.open([1, 2])
    assert shapefact(...) == ShapeFact.open()
    assert shapefact(1, None) == ShapeFact.closed([1, DimFact.ANY])


def test_fact_notation_round_trips_through_str() -> None:
    assert str(TensorFact()) == "_[..]"
    assert str(TensorFact("float32", ShapeFact.open([1, None, "S"]))) == "float32[1,_,S,..]"
    assert str(TensorFact.from_tensor(np.array([1, 2], dtype=np.int64))) == "int64[2] = [1,2]"
    assert parse_shape("[1,_,S,..]") == ShapeFact.open([1, None, "S"])
    assert parse_shape("2, 3") == ShapeFact.closed([2, 3])
    assert parse_fact("float32[1,2]") == TensorFact("float32", ShapeFact.closed([1, 2]))
    assert parse_fact("int64") == TensorFact("int64")
    assert parse_fact("[..]") == TensorFact()


@pytest.mark.parametrize("text", ["", "float32[1,x]", "notatype[1]", "[1,2"])
def test_parse_fact_rejects_bad_notation(text: str) -> None:
    with pytest.raises(ValueError):
        parse_fact(text)
