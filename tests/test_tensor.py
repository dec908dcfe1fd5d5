import numpy as np
import pytest

from failure_predictor.tensor import Matrix


class TestMatrix:
    """Dense matrix primitive."""

    def test_constructor_copies_input(self):
        source = np.array([[1.0, 2.0], [3.0, 4.0]])
        m = Matrix(source)
        source[0, 0] = 99.0
        assert m.tolist() == [[1.0, 2.0], [3.0, 4.0]]

    def test_one_dimensional_input_becomes_row(self):
        assert Matrix([1, 2, 3]).shape == (1, 3)

    def test_rejects_three_dimensions(self):
        with pytest.raises(ValueError):
            Matrix(np.zeros((2, 2, 2)))

    def test_dot(self):
        a = Matrix([[1, 2], [3, 4]])
        b = Matrix([[5], [6]])
        assert a.dot(b).tolist() == [[17.0], [39.0]]

    def test_dot_shape_mismatch(self):
        with pytest.raises(ValueError):
            Matrix([[1, 2, 3]]).dot(Matrix([[1, 2]]))

    def test_transpose(self):
        m = Matrix([[1, 2, 3], [4, 5, 6]])
        assert m.T.shape == (3, 2)
        assert m.T.tolist() == [[1, 4], [2, 5], [3, 6]]

    def test_broadcast_add_row(self):
        m = Matrix([[1, 1], [2, 2]])
        assert m.add_row(Matrix([[10, 20]])).tolist() == [[11, 21], [12, 22]]
        with pytest.raises(ValueError):
            m.add_row(Matrix([[1, 2, 3]]))

    def test_elementwise_ops(self):
        a = Matrix([[1.0, 2.0]])
        b = Matrix([[3.0, 4.0]])
        assert (a + b).tolist() == [[4.0, 6.0]]
        assert (b - a).tolist() == [[2.0, 2.0]]
        assert (a * b).tolist() == [[3.0, 8.0]]
        assert (1.0 - a).tolist() == [[0.0, -1.0]]
        assert (2 * a).tolist() == [[2.0, 4.0]]
        assert (b / 2).tolist() == [[1.5, 2.0]]
        with pytest.raises(ValueError):
            a * Matrix([[1.0, 2.0, 3.0]])

    def test_sum_rows_and_mean(self):
        m = Matrix([[1, 2], [3, 4]])
        assert m.sum_rows().tolist() == [[4.0, 6.0]]
        assert m.mean() == 2.5

    def test_apply_keeps_shape(self):
        m = Matrix([[-1.0, 4.0]])
        assert m.apply(np.abs).tolist() == [[1.0, 4.0]]
        with pytest.raises(ValueError):
            m.apply(lambda a: a.ravel()[:1])

    def test_frozen_matrix_rejects_in_place_update(self):
        m = Matrix.zeros(2, 2)
        m.freeze()
        assert not m.writeable
        with pytest.raises(ValueError):
            m.iadd_scaled(Matrix.zeros(2, 2), 1.0)

    def test_to_numpy_is_a_copy(self):
        m = Matrix.zeros(1, 2)
        m.to_numpy()[0, 0] = 5.0
        assert m.tolist() == [[0.0, 0.0]]

    def test_uniform_respects_limit(self):
        m = Matrix.uniform(50, 50, 0.25, np.random.default_rng(0))
        values = m.to_numpy()
        assert values.min() >= -0.25 and values.max() < 0.25
