import math

import pytest

from tm25rays.linalg3 import Mat3, Vec3, solve

A = Mat3([[2, 1, 0], [1, 3, 1], [0, 1, 4]])
B = Mat3([[1, -2, 0.5], [0, 1, 3], [2, 0, 1]])


def assert_mat_close(m, n):
    for r1, r2 in zip(m, n):
        assert list(r1) == pytest.approx(list(r2), abs=1e-12)


def test_vector_add_sub_round_trip():
    u, v = Vec3(1, 2, 3), Vec3(-4, 0.5, 7)
    assert (u + v) - v == u


def test_dot_via_mul_and_symmetry():
    u, v = Vec3(1, 2, 3), Vec3(-4, 0.5, 7)
    assert u * v == u.dot(v) == v.dot(u)
    assert u.sqr() == u.dot(u)


def test_scalar_mul_both_sides():
    u = Vec3(1, 2, 3)
    assert 2 * u == u * 2 == u + u


def test_cross_basis():
    assert Vec3(1, 0, 0).cross(Vec3(0, 1, 0)) == Vec3(0, 0, 1)


def test_cross_orthogonal():
    u, v = Vec3(1, 2, 3), Vec3(-4, 0.5, 7)
    w = u.cross(v)
    assert w.dot(u) == pytest.approx(0.0, abs=1e-12)
    assert w.dot(v) == pytest.approx(0.0, abs=1e-12)


def test_unit_vector_has_norm_one():
    u = Vec3(3, -4, 12).unit()
    assert u.norm() == pytest.approx(1.0)


def test_vector_divide_by_zero():
    with pytest.raises(ZeroDivisionError):
        Vec3(1, 2, 3) / 0


def test_outer_matches_columns():
    u, v = Vec3(1, 2, 3), Vec3(4, 5, 6)
    m = u.outer(v)
    for j in range(3):
        assert m.column(j) == u * v[j]


def test_elem_and_column():
    assert [A.elem(i) for i in range(9)] == [x for row in A for x in row]
    assert A.column(1) == Vec3(A[0][1], A[1][1], A[2][1])
    with pytest.raises(IndexError):
        A.elem(9)
    with pytest.raises(IndexError):
        A.column(3)


def test_inverse_times_matrix_is_identity():
    assert_mat_close(A * A.inverse(), Mat3.eye())
    assert_mat_close(B.inverse() * B, Mat3.eye())


def test_singular_inverse_raises():
    with pytest.raises(ValueError):
        Mat3.ones().inverse()


def test_transpose_twice_and_product_rule():
    assert A.transpose().transpose() == A
    assert_mat_close((A * B).transpose(), B.transpose() * A.transpose())


def test_det_multiplicative():
    assert (A * B).det() == pytest.approx(A.det() * B.det())
    assert Mat3.zeros().det() == 0


def test_trace_and_diag():
    assert (A + B).trace() == pytest.approx(A.trace() + B.trace())
    d = A.diag()
    assert d.x + d.y + d.z == A.trace()


def test_frobenius_norm_matches_trace_of_gram():
    assert B.frobenius_norm() ** 2 == pytest.approx((B.transpose() * B).trace())


def test_matrix_scalar_ops():
    assert_mat_close((A * 3) / 3, A)
    assert 2 * A == A + A
    assert A - A == Mat3.zeros()
    with pytest.raises(ZeroDivisionError):
        A / 0


def test_vector_matrix_products_consistent():
    v = Vec3(1, -2, 5)
    assert v * B == B.transpose() * v


def test_rotations_orthonormal():
    for r in (Mat3.rot_x(0.3), Mat3.rot_y(-1.1), Mat3.rot_z(2.0), Mat3.rot(Vec3(1, 2, 2), 0.7)):
        assert r.det() == pytest.approx(1.0)
        assert_mat_close(r * r.transpose(), Mat3.eye())


def test_rot_about_axis_agrees_with_rot_z():
    assert_mat_close(Mat3.rot(Vec3(0, 0, 5), 0.4), Mat3.rot_z(0.4))


def test_rot_z_quarter_turn():
    v = Mat3.rot_z(math.pi / 2) * Vec3(1, 0, 0)
    assert list(v) == pytest.approx([0.0, 1.0, 0.0], abs=1e-12)


def test_solve_recovers_solution():
    x = Vec3(1.5, -2, 0.25)
    b = A * x
    assert list(solve(A, b)) == pytest.approx(list(x))