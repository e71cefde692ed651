from __future__ import annotations

import pytest

from strategy_optimizer.core.exceptions import MalformedInputError
from strategy_optimizer.optimize.schema import ParameterSchema, ParamSpec


@pytest.fixture
def schema() -> ParameterSchema:
    return ParameterSchema(
        [
            ParamSpec("window", 5, 50, 10, kind="int"),
            ParamSpec("threshold", 0.5, 3.0, 2.0),
        ]
    )


def test_from_mapping_fills_defaults():
    schema = ParameterSchema.from_mapping(
        {"a": {"min": 1, "max": 10, "kind": "int"}, "b": {"min": 0.0, "max": 1.0}}
    )
    assert schema.names == ("a", "b")
    assert schema.defaults() == {"a": 5, "b": 0.5}


def test_int_default_lands_on_an_integer_inside_bounds():
    narrow = ParameterSchema.from_mapping({"w": {"min": 2.5, "max": 3, "kind": "int"}})
    assert narrow.defaults() == {"w": 3}
    narrow.validate(narrow.defaults())


@pytest.mark.parametrize(
    "mapping",
    [
        {"a": {"max": 1.0}},
        {"a": {"min": 2.0, "max": 1.0}},
        {"a": {"min": 0.0, "max": 1.0, "default": 5.0}},
        {"a": {"min": 0.2, "max": 0.8, "kind": "int"}},
        {"a": {"min": 0.0, "max": 1.0, "kind": "complex"}},
        {"a": 3},
        {},
    ],
)
def test_from_mapping_rejects_malformed(mapping):
    with pytest.raises(MalformedInputError):
        ParameterSchema.from_mapping(mapping)


def test_duplicate_names_rejected():
    with pytest.raises(MalformedInputError):
        ParameterSchema([ParamSpec("a", 0, 1, 0), ParamSpec("a", 0, 2, 0)])


def test_sample_stays_in_bounds(schema, rng):
    for _ in range(200):
        vec = schema.sample(rng)
        assert 5 <= vec["window"] <= 50
        assert isinstance(vec["window"], int)
        assert 0.5 <= vec["threshold"] <= 3.0


def test_validate_requires_exact_keys(schema):
    with pytest.raises(MalformedInputError):
        schema.validate({"window": 10})
    with pytest.raises(MalformedInputError):
        schema.validate({"window": 10, "threshold": 1.0, "extra": 1})
    with pytest.raises(MalformedInputError):
        schema.validate({"window": 51, "threshold": 1.0})
    with pytest.raises(MalformedInputError):
        schema.validate({"window": 10, "threshold": float("nan")})
    with pytest.raises(MalformedInputError):
        schema.validate({"window": "ten", "threshold": 1.0})
    assert schema.validate({"window": 10.2, "threshold": 1.0}) == {
        "window": 10,
        "threshold": 1.0,
    }


def test_clamp_and_array_views(schema):
    assert schema.clamp({"window": 70.6, "threshold": -1.0}) == {
        "window": 50,
        "threshold": 0.5,
    }
    arr = schema.to_array({"window": 12, "threshold": 1.5})
    assert list(arr) == [12.0, 1.5]
    expected = {"window": 12, "threshold": 1.9}
    assert schema.from_array(arr + 0.4) == pytest.approx(expected)
    assert list(schema.lower()) == [5.0, 0.5]
    assert list(schema.upper()) == [50.0, 3.0]
    assert schema.to_dict()["window"]["kind"] == "int"
