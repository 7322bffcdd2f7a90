import math
import random

import pytest

from tm25rays.linalg3 import Vec3
from tm25rays.rayset import (
    RayError,
    RayItem,
    RaySetItems,
    RayWarning,
    TM25RaySet,
    check_ray,
)
from tm25rays.tm25header import TM25Error, TM25Header


def make_set(rays, **fields):
    return TM25RaySet(TM25Header(n_rays=len(rays), **fields), rays)


LINE_RAYS = [
    [0.0, 0.0, 0.0, 0.0, 0.0, 1.0, 1.0],
    [1.0, 0.0, 0.0, 0.0, 0.0, 1.0, 2.0],
    [2.0, 0.0, 0.0, 0.0, 0.0, 1.0, 3.0],
    [3.0, 0.0, 0.0, 0.0, 0.0, 1.0, 4.0],
]


def test_default_ray_set():
    rs = TM25RaySet()
    assert rs.n_rays() == 1
    assert rs.n_items() == 7
    assert rs.power_column() == 6
    loc, direction, flux = rs.ray_loc_dir_flux(0)
    assert loc == Vec3(0, 0, 0)
    assert direction == Vec3(0, 0, 1)
    assert flux == 1.0


def test_items_from_spectral_header():
    header = TM25Header(lambda_flag=True, spectrum_type=2)
    items = RaySetItems.from_header(header)
    assert items.n_total_items() == 8
    assert items.index(RayItem.PHI) == 6
    assert items.index(RayItem.LAMBDA) == 7
    assert items.index(RayItem.TRI_Y) is None
    assert not items.is_present(RayItem.S1)


def test_extraction_map_and_contains():
    items = RaySetItems.from_header(TM25Header(lambda_flag=True))
    needed = RaySetItems()
    for item in (RayItem.X, RayItem.KZ, RayItem.LAMBDA):
        needed.mark_as_present(item)
    assert items.contains_items(needed)
    assert items.extraction_map(needed) == [0, 5, 7]
    needed.mark_as_present(RayItem.S2)
    assert not items.contains_items(needed)
    with pytest.raises(TM25Error):
        items.extraction_map(needed)


def test_check_ray_normalizes_direction():
    items = RaySetItems.from_header(TM25Header())
    result = check_ray([0, 0, 0, 0, 0, 2, 1], items, normalize_k=True)
    assert result.warnings == {RayWarning.K_NOT_NORMALIZED}
    assert result.ray[5] == 1.0
    plain = check_ray([0, 0, 0, 0, 0, 2, 1], items)
    assert plain.ray[5] == 2.0


def test_check_ray_flux_and_nan():
    items = RaySetItems.from_header(TM25Header())
    result = check_ray([math.nan, 0, 0, 0, 0, 1, -1], items)
    assert RayWarning.RAD_FLUX_NOT_POSITIVE in result.warnings
    assert result.errors == {RayError.SIGNALING_NAN}
    assert not result.ok


def test_check_ray_stokes():
    items = RaySetItems.from_header(TM25Header(stokes_flag=True))
    assert items.n_total_items() == 10
    combined = check_ray([0, 0, 0, 0, 0, 1, 1, 0.9, 0.9, 0.0], items)
    assert combined.errors == {RayError.S123_NOT_IN_PLUS_MINUS_ONE}
    single = check_ray([0, 0, 0, 0, 0, 1, 1, 1.5, 0.0, 0.0], items)
    assert RayError.S1_NOT_IN_PLUS_MINUS_ONE in single.errors
    good = check_ray([0, 0, 0, 0, 0, 1, 1, 0.5, 0.5, 0.5], items)
    assert good.ok


def test_wrong_ray_width_rejected():
    with pytest.raises(TM25Error):
        make_set([[0.0, 0.0, 0.0, 0.0, 0.0, 1.0]])


def test_header_ray_count_mismatch():
    rs = TM25RaySet(TM25Header(n_rays=2), [LINE_RAYS[0]])
    with pytest.raises(TM25Error):
        rs.n_rays()


def test_write_read_round_trip(tmp_path):
    path = tmp_path / "rays.TM25RAY"
    rs = make_set(LINE_RAYS, name="lamp")
    rs.write(path)
    back = TM25RaySet.read(path)
    assert back.rays == tuple(tuple(r) for r in LINE_RAYS)
    assert back.header.name == "lamp"
    assert back.n_rays() == len(LINE_RAYS)
    assert back.warnings == []


def test_read_warns_and_normalizes(tmp_path):
    path = tmp_path / "k.TM25RAY"
    make_set([[0, 0, 0, 0, 0, 1, 1], [0, 0, 0, 0, 0, 2, 1]]).write(path)
    back = TM25RaySet.read(path)
    assert any("kNotNormalized" in w and w.endswith("1") for w in back.warnings)
    assert back.rays[1][5] == 2.0
    normalized = TM25RaySet.read(path, normalize_k=True)
    assert normalized.rays[1][5] == 1.0


def test_read_rejects_nan(tmp_path):
    path = tmp_path / "nan.TM25RAY"
    make_set([[0, 0, 0, 0, 0, 1, 1], [math.nan, 0, 0, 0, 0, 1, 1]]).write(path)
    with pytest.raises(TM25Error, match="signalingNaN"):
        TM25RaySet.read(path)


def test_read_truncated(tmp_path):
    path = tmp_path / "short.TM25RAY"
    make_set(LINE_RAYS).write(path)
    path.write_bytes(path.read_bytes()[:-4])
    with pytest.raises(TM25Error):
        TM25RaySet.read(path)


def test_write_with_selection(tmp_path):
    path = tmp_path / "sel.TM25RAY"
    rs = make_set(LINE_RAYS)
    assert rs.select_subset(lambda ray: ray[0] >= 2) == 2
    rs.write(path)
    back = TM25RaySet.read(path)
    assert back.n_rays() == 2
    assert sorted(r[0] for r in back.rays) == [2.0, 3.0]


def test_write_header_mismatch_raises(tmp_path):
    rs = TM25RaySet(TM25Header(n_rays=3), LINE_RAYS[:1])
    with pytest.raises(TM25Error):
        rs.write(tmp_path / "bad.TM25RAY")


def test_ray_loc_dir_flux_out_of_range():
    rs = make_set(LINE_RAYS)
    with pytest.raises(TM25Error):
        rs.ray_loc_dir_flux(len(LINE_RAYS))


def test_extraction():
    rs = make_set(LINE_RAYS)
    em = [0, 6]
    assert rs.extract_all(em) == [[r[0], r[6]] for r in LINE_RAYS]
    assert rs.extract_range(em, 1, 3) == [[r[0], r[6]] for r in LINE_RAYS[1:3]]
    assert rs.extract_selection(em, [3, 0]) == [[LINE_RAYS[3][0], LINE_RAYS[3][6]], [LINE_RAYS[0][0], LINE_RAYS[0][6]]]
    assert rs.extract_single(em, 2) == [LINE_RAYS[2][0], LINE_RAYS[2][6]]
    with pytest.raises(TM25Error):
        rs.extract_range(em, 3, 1)
    with pytest.raises(TM25Error):
        rs.extract_single([7], 0)


def test_power_column_luminous_and_missing():
    lum = make_set(LINE_RAYS, rad_flux_flag=False, lum_flux_flag=True, phi=math.nan)
    assert lum.items.index(RayItem.TRI_Y) == lum.power_column()
    neither = make_set(LINE_RAYS[:1] and [r[:6] for r in LINE_RAYS], rad_flux_flag=False)
    with pytest.raises(TM25Error):
        neither.power_column()


def test_virtual_focus_converging():
    focus = Vec3(1.0, 2.0, 3.0)
    directions = [Vec3(0, 0, 1), Vec3(1, 0, 1), Vec3(0, 1, 1), Vec3(-1, -1, 2)]
    rays = []
    for d in directions:
        start = focus - 2.0 * d
        rays.append([*start, *d, 1.0])
    vf = make_set(rays).virtual_focus()
    assert (vf - focus).norm() == pytest.approx(0.0, abs=1e-9)


def test_virtual_focus_collimated_is_weighted_centre():
    rays = [[0, 0, 0, 0, 0, 1, 1.0], [3, 0, 0, 0, 0, 1, 2.0]]
    vf = make_set(rays).virtual_focus()
    assert vf.x == pytest.approx(2.0)
    assert vf.y == pytest.approx(0.0)


def test_max_distance_and_histograms():
    rs = make_set(LINE_RAYS)
    origin = Vec3()
    md = rs.max_distance(origin)
    assert md == pytest.approx(3.0)
    bins = rs.distance_histogram(origin, 3)
    assert sum(b.n_rays for b in bins) == len(LINE_RAYS)
    assert sum(b.flux for b in bins) == pytest.approx(rs.total_selected_power())
    assert bins[-1].dist == pytest.approx(md)
    fbins = rs.flux_histogram(4)
    assert sum(b.n_rays for b in fbins) == len(LINE_RAYS)
    assert fbins[-1].flux_limit == max(r[6] for r in LINE_RAYS)
    with pytest.raises(ValueError):
        rs.flux_histogram(0)


def test_select_max_distance_and_unselect():
    rs = make_set(LINE_RAYS)
    n = rs.select_max_distance(1.5, Vec3())
    assert n == 2
    assert rs.selection_active()
    assert rs.n_rays() == 2
    assert rs.total_selected_power() == LINE_RAYS[0][6] + LINE_RAYS[1][6]
    rs.unselect_subset()
    assert not rs.selection_active()
    assert rs.n_rays() == len(LINE_RAYS)


def test_shuffle_keeps_selection_apart():
    rays = [[float(i), 0, 0, 0, 0, 1, 1] for i in range(20)]
    rs = make_set(rays)
    rs.select_subset(lambda ray: ray[0] < 8)
    rs.shuffle(random.Random(3))
    assert sorted(r[0] for r in rs.rays[:8]) == [float(i) for i in range(8)]
    assert sorted(r[0] for r in rs.rays) == [r[0] for r in rays]


def test_make_k_unit():
    rs = make_set([[0, 0, 0, 3, 0, 4, 1]])
    rs.make_k_unit()
    _, direction, _ = rs.ray_loc_dir_flux(0)
    assert direction.norm() == pytest.approx(1.0)


def test_bounding_box():
    lo, hi = make_set(LINE_RAYS).bounding_box()
    assert lo == Vec3(0, 0, 0)
    assert hi == Vec3(3, 0, 0)
    with pytest.raises(TM25Error):
        TM25RaySet(TM25Header(), []).bounding_box()


def test_diagnostics_report():
    text = make_set(LINE_RAYS).diagnostics()
    assert text.startswith("Bounding Box: x in [0,3]")
    assert "Virtual Focus: F = [" in text
    assert f"total # of rays = {len(LINE_RAYS)}" in text