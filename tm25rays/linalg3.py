"""Small fixed-size linear algebra in three dimensions."""

from __future__ import annotations

import math
from dataclasses import dataclass
from numbers import Real
from typing import Iterable, Iterator


@dataclass(frozen=True, slots=True)
class Vec3:
    """An immutable 3D vector."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def __iter__(self) -> Iterator[float]:
        yield self.x
        yield self.y
        yield self.z

    def __len__(self) -> int:
        return 3

    def __getitem__(self, i: int) -> float:
        return (self.x, self.y, self.z)[i]

    def __add__(self, other: Vec3) -> Vec3:
        if not isinstance(other, Vec3):
            return NotImplemented
        return Vec3(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: Vec3) -> Vec3:
        if not isinstance(other, Vec3):
            return NotImplemented
        return Vec3(self.x - other.x, self.y - other.y, self.z - other.z)

    def __neg__(self) -> Vec3:
        return Vec3(-self.x, -self.y, -self.z)

    def __mul__(self, other):
        """Scalar product with a vector, row-vector product with a matrix, or scaling."""
        if isinstance(other, Vec3):
            return self.dot(other)
        if isinstance(other, Mat3):
            return Vec3(*(self.dot(other.column(j)) for j in range(3)))
        if isinstance(other, Real):
            s = float(other)
            return Vec3(self.x * s, self.y * s, self.z * s)
        return NotImplemented

    def __rmul__(self, other):
        if isinstance(other, Real):
            return self * other
        return NotImplemented

    def __truediv__(self, other):
        if not isinstance(other, Real):
            return NotImplemented
        r = float(other)
        if r == 0:
            raise ZeroDivisionError("division of vector by zero")
        return Vec3(self.x / r, self.y / r, self.z / r)

    def dot(self, other: Vec3) -> float:
        """Scalar product."""
        return self.x * other.x + self.y * other.y + self.z * other.z

    def sqr(self) -> float:
        """Squared length."""
        return self.x * self.x + self.y * self.y + self.z * self.z

    def cross(self, other: Vec3) -> Vec3:
        """Cross product."""
        return Vec3(
            self.y * other.z - self.z * other.y,
            self.z * other.x - self.x * other.z,
            self.x * other.y - self.y * other.x,
        )

    def norm(self) -> float:
        """Euclidean length."""
        return math.sqrt(self.sqr())

    def unit(self) -> Vec3:
        """The vector scaled to unit length."""
        return self / self.norm()

    def outer(self, other: Vec3) -> Mat3:
        """Outer product self * other^T."""
        return Mat3([other * a for a in self])


class Mat3:
    """An immutable 3x3 matrix stored by rows."""

    __slots__ = ("_rows",)

    def __init__(self, rows: Iterable[Iterable[float]]):
        converted = tuple(r if isinstance(r, Vec3) else Vec3(*(float(v) for v in r)) for r in rows)
        if len(converted) != 3:
            raise ValueError(f"a 3x3 matrix needs 3 rows, got {len(converted)}")
        self._rows = converted

    @property
    def rows(self) -> tuple[Vec3, Vec3, Vec3]:
        return self._rows

    def __getitem__(self, i: int) -> Vec3:
        return self._rows[i]

    def __iter__(self) -> Iterator[Vec3]:
        return iter(self._rows)

    def __len__(self) -> int:
        return 3

    def __eq__(self, other) -> bool:
        if not isinstance(other, Mat3):
            return NotImplemented
        return self._rows == other._rows

    def __hash__(self) -> int:
        return hash(self._rows)

    def __repr__(self) -> str:
        return f"Mat3({[tuple(r) for r in self._rows]!r})"

    def __add__(self, other: Mat3) -> Mat3:
        if not isinstance(other, Mat3):
            return NotImplemented
        return Mat3(a + b for a, b in zip(self._rows, other._rows))

    def __sub__(self, other: Mat3) -> Mat3:
        if not isinstance(other, Mat3):
            return NotImplemented
        return Mat3(a - b for a, b in zip(self._rows, other._rows))

    def __neg__(self) -> Mat3:
        return Mat3(-r for r in self._rows)

    def __mul__(self, other):
        """Scaling, matrix-vector product, or matrix-matrix product."""
        if isinstance(other, Mat3):
            cols = [other.column(j) for j in range(3)]
            return Mat3([[row.dot(c) for c in cols] for row in self._rows])
        if isinstance(other, Vec3):
            return Vec3(*(row.dot(other) for row in self._rows))
        if isinstance(other, Real):
            return Mat3(row * other for row in self._rows)
        return NotImplemented

    def __rmul__(self, other):
        if isinstance(other, Real):
            return self * other
        return NotImplemented

    def __truediv__(self, other):
        if not isinstance(other, Real):
            return NotImplemented
        if other == 0:
            raise ZeroDivisionError("division of matrix by zero")
        return self * (1.0 / float(other))

    def elem(self, i: int) -> float:
        """Element at linear row-major index i, 0 <= i < 9."""
        if not 0 <= i < 9:
            raise IndexError(f"linear matrix index must be in [0, 9), got {i}")
        return self._rows[i // 3][i % 3]

    def column(self, i: int) -> Vec3:
        """Column i as a vector."""
        if not 0 <= i < 3:
            raise IndexError(f"column index must be in [0, 3), got {i}")
        return Vec3(*(row[i] for row in self._rows))

    def inverse(self) -> Mat3:
        """Matrix inverse by the adjugate; raises ValueError if singular."""
        det = self.det()
        if det == 0:
            raise ValueError("matrix is singular")
        (a, b, c), (d, e, f), (g, h, i) = self._rows
        adj = Mat3(
            [
                [e * i - f * h, c * h - b * i, b * f - c * e],
                [f * g - d * i, a * i - c * g, c * d - a * f],
                [d * h - e * g, b * g - a * h, a * e - b * d],
            ]
        )
        return adj / det

    def transpose(self) -> Mat3:
        return Mat3(self.column(j) for j in range(3))

    def det(self) -> float:
        """Determinant, expanded along the first column."""
        m = self._rows

        def sub_det(i: int, j: int) -> float:
            return (
                m[(i + 1) % 3][(j + 1) % 3] * m[(i + 2) % 3][(j + 2) % 3]
                - m[(i + 2) % 3][(j + 1) % 3] * m[(i + 1) % 3][(j + 2) % 3]
            )

        return sum(m[i][0] * sub_det(i, 0) for i in range(3))

    def trace(self) -> float:
        return self._rows[0][0] + self._rows[1][1] + self._rows[2][2]

    def diag(self) -> Vec3:
        return Vec3(self._rows[0][0], self._rows[1][1], self._rows[2][2])

    def frobenius_norm(self) -> float:
        return math.sqrt(sum(row.sqr() for row in self._rows))

    @classmethod
    def zeros(cls) -> Mat3:
        return cls([[0, 0, 0], [0, 0, 0], [0, 0, 0]])

    @classmethod
    def ones(cls) -> Mat3:
        return cls([[1, 1, 1], [1, 1, 1], [1, 1, 1]])

    @classmethod
    def eye(cls) -> Mat3:
        return cls([[1, 0, 0], [0, 1, 0], [0, 0, 1]])

    @classmethod
    def rot_x(cls, theta_rad: float) -> Mat3:
        c, s = math.cos(theta_rad), math.sin(theta_rad)
        return cls([[1, 0, 0], [0, c, -s], [0, s, c]])

    @classmethod
    def rot_y(cls, theta_rad: float) -> Mat3:
        c, s = math.cos(theta_rad), math.sin(theta_rad)
        return cls([[c, 0, s], [0, 1, 0], [-s, 0, c]])

    @classmethod
    def rot_z(cls, theta_rad: float) -> Mat3:
        c, s = math.cos(theta_rad), math.sin(theta_rad)
        return cls([[c, -s, 0], [s, c, 0], [0, 0, 1]])

    @classmethod
    def rot(cls, axis: Vec3, theta_rad: float) -> Mat3:
        """Rotation by theta_rad about the (not necessarily unit) axis."""
        c, s = math.cos(theta_rad), math.sin(theta_rad)
        mc = 1 - c
        ux, uy, uz = axis.unit()
        return cls(
            [
                [c + ux * ux * mc, ux * uy * mc - uz * s, ux * uz * mc + uy * s],
                [uy * ux * mc + uz * s, c + uy * uy * mc, uy * uz * mc - ux * s],
                [uz * ux * mc - uy * s, uz * uy * mc + ux * s, c + uz * uz * mc],
            ]
        )


def solve(a: Mat3, b: Vec3) -> Vec3:
    """Solve a x = b."""
    return a.inverse() * b