import numpy as np
import pytest

from framegraph.values import RAW_DTYPE, as_value, freeze, owned_copy, values_equal


def test_as_value_promotes_scalars() -> None:
    value = as_value(3)
    assert value.shape == (1,)
    assert value.dtype == RAW_DTYPE
    assert value[0] == 3.0


def test_as_value_rejects_matrices() -> None:
    with pytest.raises(ValueError, match="rank 2"):
        as_value(np.zeros((2, 2)), name="frame")


def test_freeze_and_owned_copy() -> None:
    value = freeze(as_value([1.0, 2.0]))
    with pytest.raises(ValueError):
        value[0] = 5.0
    copy = owned_copy(value)
    copy[0] = 5.0
    assert value[0] == 1.0
    assert copy.flags.writeable


def test_values_equal_checks_shape_and_contents() -> None:
    assert values_equal([1.0, 2.0], np.array([1.0, 2.0]))
    assert not values_equal([1.0, 2.0], [1.0, 2.0, 3.0])
    assert not values_equal([1.0, 2.0], [1.0, 2.5])
