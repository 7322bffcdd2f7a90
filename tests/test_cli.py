from tm25rays.cli import main
from tm25rays.rayset import TM25RaySet
from tm25rays.tm25header import TM25Header


def _write(path, rays):
    rs = TM25RaySet(TM25Header(n_rays=len(rays)), rays)
    rs.write(path)
    return path


def test_default_ray_set_bounding_box(tmp_path, capsys):
    path = tmp_path / "one.TM25RAY"
    TM25RaySet().write(path)
    assert main([str(path)]) == 0
    out = capsys.readouterr().out
    assert "Bounding Box: x in [0,0], y in [0,0], z in [0,0]" in out


def test_bounding_box_spans_rays(tmp_path, capsys):
    path = _write(
        tmp_path / "two.TM25RAY",
        [[-1, 2, 0, 0, 0, 1, 1], [3, -4, 5, 0, 0, 1, 1]],
    )
    assert main([str(path)]) == 0
    assert "x in [-1,3], y in [-4,2], z in [0,5]" in capsys.readouterr().out


def test_warnings_are_printed(tmp_path, capsys):
    path = _write(tmp_path / "w.TM25RAY", [[0, 0, 0, 0, 0, 2, 1]])
    assert main([str(path)]) == 0
    assert "kNotNormalized" in capsys.readouterr().out


def test_diagnostics_option(tmp_path, capsys):
    path = _write(tmp_path / "d.TM25RAY", [[0, 0, 0, 0, 0, 1, 1], [1, 0, 0, 0, 0, 1, 1]])
    assert main(["--diagnostics", str(path)]) == 0
    out = capsys.readouterr().out
    assert "Distance histogram:" in out
    assert "Flux histogram:" in out


def test_missing_file_reports_error(tmp_path, capsys):
    missing = tmp_path / "missing.TM25RAY"
    assert main([str(missing)]) == 1
    assert str(missing) in capsys.readouterr().out


def test_bad_file_reports_error(tmp_path, capsys):
    path = tmp_path / "bad.TM25RAY"
    path.write_bytes(b"XXXX" + bytes(100))
    assert main([str(path)]) == 1
    assert "file type should be TM25" in capsys.readouterr().out