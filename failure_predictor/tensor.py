"""
Dense Matrix Primitive
======================
Small 2-D float64 buffer with the linear-algebra operations the network needs.

Each Matrix owns its buffer: constructors copy their input, and operations
return new matrices unless the method name says it works in place.
"""

from typing import Callable, Sequence, Tuple, Union

import numpy as np

Number = Union[int, float]
Operand = Union['Matrix', Number]


class Matrix:
    """Dense row-major matrix of float64 values."""

    __slots__ = ('_data',)

    def __init__(self, values: Union[np.ndarray, Sequence[Sequence[Number]]]):
        data = np.array(values, dtype=np.float64, copy=True)
        if data.ndim == 1:
            data = data.reshape(1, -1)
        if data.ndim != 2:
            raise ValueError(f"Matrix expects 2-D data, got {data.ndim} dimensions")
        self._data = data

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def _wrap(cls, data: np.ndarray) -> 'Matrix':
        # Takes ownership of a freshly computed array without copying.
        matrix = cls.__new__(cls)
        matrix._data = data
        return matrix

    @classmethod
    def zeros(cls, rows: int, cols: int) -> 'Matrix':
        return cls._wrap(np.zeros((rows, cols), dtype=np.float64))

    @classmethod
    def zeros_like(cls, other: 'Matrix') -> 'Matrix':
        return cls.zeros(*other.shape)

    @classmethod
    def uniform(cls, rows: int, cols: int, limit: float,
                rng: np.random.Generator) -> 'Matrix':
        """Values drawn uniformly from [-limit, limit)."""
        return cls._wrap(rng.uniform(-limit, limit, size=(rows, cols)))

    # ------------------------------------------------------------------
    # Shape and access
    # ------------------------------------------------------------------

    @property
    def shape(self) -> Tuple[int, int]:
        return self._data.shape

    @property
    def rows(self) -> int:
        return self._data.shape[0]

    @property
    def cols(self) -> int:
        return self._data.shape[1]

    @property
    def writeable(self) -> bool:
        return self._data.flags.writeable

    def freeze(self):
        """Make the buffer read-only; later in-place updates raise ValueError."""
        self._data.flags.writeable = False

    def to_numpy(self) -> np.ndarray:
        """Return a copy of the underlying buffer."""
        return self._data.copy()

    def tolist(self):
        return self._data.tolist()

    def take_rows(self, indices: Union[Sequence[int], np.ndarray]) -> 'Matrix':
        return Matrix._wrap(self._data[np.asarray(indices, dtype=np.intp)])

    def copy(self) -> 'Matrix':
        return Matrix._wrap(self._data.copy())

    # ------------------------------------------------------------------
    # Linear algebra
    # ------------------------------------------------------------------

    def dot(self, other: 'Matrix') -> 'Matrix':
        if self.cols != other.rows:
            raise ValueError(f"Cannot multiply {self.shape} by {other.shape}")
        return Matrix._wrap(self._data @ other._data)

    @property
    def T(self) -> 'Matrix':
        return Matrix._wrap(self._data.T.copy())

    def add_row(self, row: 'Matrix') -> 'Matrix':
        """Broadcast-add a 1×cols row vector to every row."""
        if row.rows != 1 or row.cols != self.cols:
            raise ValueError(f"Cannot broadcast {row.shape} over {self.shape}")
        return Matrix._wrap(self._data + row._data)

    def sum_rows(self) -> 'Matrix':
        """Column sums as a 1×cols row vector."""
        return Matrix._wrap(self._data.sum(axis=0, keepdims=True))

    def mean(self) -> float:
        return float(self._data.mean())

    def apply(self, func: Callable[[np.ndarray], np.ndarray]) -> 'Matrix':
        """Element-wise map of a vectorised function."""
        result = np.asarray(func(self._data), dtype=np.float64)
        if result.shape != self.shape:
            raise ValueError("apply() must preserve shape")
        return Matrix._wrap(result)

    def _operand(self, other: Operand):
        if isinstance(other, Matrix):
            if other.shape != self.shape:
                raise ValueError(f"Shape mismatch: {self.shape} vs {other.shape}")
            return other._data
        return float(other)

    def __add__(self, other: Operand) -> 'Matrix':
        return Matrix._wrap(self._data + self._operand(other))

    def __sub__(self, other: Operand) -> 'Matrix':
        return Matrix._wrap(self._data - self._operand(other))

    def __rsub__(self, other: Number) -> 'Matrix':
        return Matrix._wrap(float(other) - self._data)

    def __mul__(self, other: Operand) -> 'Matrix':
        return Matrix._wrap(self._data * self._operand(other))

    __rmul__ = __mul__

    def __truediv__(self, other: Operand) -> 'Matrix':
        return Matrix._wrap(self._data / self._operand(other))

    def __neg__(self) -> 'Matrix':
        return Matrix._wrap(-self._data)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Matrix):
            return NotImplemented
        return self.shape == other.shape and bool(np.array_equal(self._data, other._data))

    __hash__ = None

    # ------------------------------------------------------------------
    # In-place updates (optimizer only)
    # ------------------------------------------------------------------

    def iadd_scaled(self, other: 'Matrix', scale: float):
        """self += scale * other, in place."""
        self._data += scale * self._operand(other)

    def __repr__(self) -> str:
        return f"Matrix(shape={self.shape})"
