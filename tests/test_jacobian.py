import numpy as np
import pytest

from curve_calibration_engine.errors import ConfigurationError, ConvergenceError, DimensionError
from curve_calibration_engine.jacobian import (
    CurveBuildingBlockBundle,
    CurveParameterSize,
    JacobianCalibrationMatrix,
    building_blocks_for_group,
    invert,
    multiply,
    order_windows,
    scale,
    transition_matrix,
)


A = CurveParameterSize("A", 1)
B = CurveParameterSize("B", 2)
C = CurveParameterSize("C", 1)


@pytest.fixture(scope="module")
def bundle():
    block_a = JacobianCalibrationMatrix((A,), [[2.0]])
    block_b = JacobianCalibrationMatrix((A, B), [[0.5, 1.0, 0.0], [0.1, 0.0, 1.0]])
    return CurveBuildingBlockBundle({"A": block_a, "B": block_b})


def test_invert_and_products():
    m = np.array([[2.0, 1.0], [1.0, 3.0]])
    np.testing.assert_allclose(multiply(invert(m), m), np.eye(2), atol=1e-14)
    np.testing.assert_allclose(scale(m, -1.0), -m)
    assert invert(np.zeros((0, 0))).shape == (0, 0)


def test_invert_errors():
    with pytest.raises(DimensionError):
        invert(np.ones((2, 3)))
    with pytest.raises(ConvergenceError):
        invert(np.array([[1.0, 2.0], [2.0, 4.0]]))
    with pytest.raises(DimensionError):
        multiply(np.ones((2, 3)), np.ones((2, 3)))


def test_order_windows():
    assert order_windows([A, B, C]) == {"A": (0, 1), "B": (1, 2), "C": (3, 1)}
    with pytest.raises(ConfigurationError):
        order_windows([A, A])


def test_calibration_matrix_columns_must_match_order():
    with pytest.raises(DimensionError):
        JacobianCalibrationMatrix((A, B), np.zeros((2, 2)))


def test_calibration_matrix_sub_matrix_and_frame(bundle):
    block_b = bundle.get("B")
    assert block_b.curve_names == ("A", "B")
    assert block_b.contains_curve("A")
    assert not block_b.contains_curve("C")
    np.testing.assert_allclose(block_b.sub_matrix("A"), [[0.5], [0.1]])
    np.testing.assert_allclose(block_b.sub_matrix("B"), np.eye(2))

    frame = bundle.to_frame("B")
    assert frame.shape == (2, 3)
    assert list(frame.columns) == [("A", 0), ("B", 0), ("B", 1)]

    with pytest.raises(ValueError):
        block_b.matrix[0, 0] = 9.0


def test_bundle_merge_is_immutable(bundle):
    block_c = JacobianCalibrationMatrix((A, B, C), np.ones((1, 4)))
    merged = bundle.merged({"C": block_c})

    assert merged.names == ("A", "B", "C")
    assert len(bundle) == 2, "Merging must not touch the original bundle"
    assert "C" not in bundle

    with pytest.raises(ConfigurationError):
        merged.merged({"A": bundle.get("A")})
    with pytest.raises(ConfigurationError):
        bundle.get("Z")


def test_transition_matrix_assembly(bundle):
    t = transition_matrix([A, B], bundle)
    expected = np.array(
        [
            [2.0, 0.0, 0.0],
            [0.5, 1.0, 0.0],
            [0.1, 0.0, 1.0],
        ]
    )
    np.testing.assert_allclose(t, expected)


def test_first_group_block_is_inverse_sensitivity():
    s = np.array([[2.0, 1.0], [0.0, 4.0]])
    blocks = building_blocks_for_group(s, [B], [], CurveBuildingBlockBundle())
    assert set(blocks) == {"B"}
    assert blocks["B"].order == (B,)
    np.testing.assert_allclose(blocks["B"].matrix, np.linalg.inv(s))


def test_later_group_block_chains_earlier_blocks(bundle):
    # group C after A: measure = 3 * a + 4 * c
    s = np.array([[3.0, 4.0]])
    blocks = building_blocks_for_group(s, [C], [A], bundle)

    block = blocks["C"]
    assert block.curve_names == ("A", "C")
    # dc/dm_c = 1/4, dc/dm_a = -(1/4) * 3 * (da/dm_a = 2)
    np.testing.assert_allclose(block.matrix, [[-1.5, 0.25]])


def test_later_group_block_through_two_curves(bundle):
    s = np.array([[1.0, 2.0, 3.0, 5.0]])
    block = building_blocks_for_group(s, [C], [A, B], bundle)["C"]

    transition = transition_matrix([A, B], bundle)
    expected_before = -(1.0 / 5.0) * s[:, :3] @ transition
    np.testing.assert_allclose(block.sub_matrix("C"), [[0.2]])
    np.testing.assert_allclose(block.matrix[:, :3], expected_before)


def test_group_sensitivity_shape_is_checked(bundle):
    with pytest.raises(DimensionError):
        building_blocks_for_group(np.ones((1, 3)), [C], [A], bundle)


def test_singular_direct_block_raises(bundle):
    s = np.array([[1.0, 2.0, 0.0, 0.0], [1.0, 2.0, 0.0, 0.0]])
    with pytest.raises(ConvergenceError):
        building_blocks_for_group(s, [B], [A, C], CurveBuildingBlockBundle())
