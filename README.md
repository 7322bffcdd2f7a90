# tm25rays

Tools for ray data files of light sources: read, check, write and analyse
files in the IES TM-25 ray file format, and convert to and from Zemax
binary source files.

The package is pure Python and has no runtime dependencies.

## Installation

```
pip install .
```

To run the test suite:

```
pip install .[test]
pytest
```

## Command line

The `tm25rays` command reads one or more TM-25 ray files. For each file it
prints the warnings found while checking the header and the ray data, then
the bounding box of the ray starting points:

```
tm25rays rayfile.TM25RAY
tm25rays --normalize-k --diagnostics first.TM25RAY second.TM25RAY
```

- `--normalize-k` scales ray directions to unit length while reading.
- `--diagnostics` prints a fuller report instead of the bounding box alone:
  bounding box, virtual focus, maximum distance, and distance and flux
  histograms.

A file that cannot be read or is malformed is reported with its error
message instead of a traceback; the command then exits with status 1.

## Library use

### Reading and inspecting a TM-25 ray file

```python
from tm25rays.rayset import TM25RaySet

rays = TM25RaySet.read("rayfile.TM25RAY", normalize_k=True)
for warning in rays.warnings:
    print(warning)
print(rays.n_rays(), "rays with", rays.n_items(), "items each")

location, direction, flux = rays.ray_loc_dir_flux(0)

focus = rays.virtual_focus()
print(rays.max_distance(focus))
print(rays.diagnostics())
```

Reading checks the header and every ray against the TM-25 rules. Problems
that make a file unusable raise `TM25Error` (from `tm25rays.tm25header`,
a subclass of `ValueError`); milder problems are collected in the ray
set's `warnings` list. A single ray can be checked with
`tm25rays.rayset.check_ray`.

`TM25RaySet.write(filename)` writes the header and the rays back to a
TM-25 file; a header that fails `TM25Header.sanity_check()` fatally is
refused.

### Selecting rays

A selection moves the matching rays to the front of the ray set. Counting
(`n_rays`), the virtual focus, distances, histograms, total power and
writing then apply to the selected rays only; `bounding_box` and
`extract_all` still cover every ray.

```python
n = rays.select_max_distance(0.5, focus)
print(n, "rays pass within 0.5 of the focus")
print(rays.total_selected_power())
rays.unselect_subset()
```

`select_subset(predicate)` selects with any function of a ray record, and
`shuffle()` reorders the rays while keeping selected and unselected rays
apart.

### Extracting ray items

```python
from tm25rays.rayset import RayItem, RaySetItems

wanted = RaySetItems()
for item in (RayItem.X, RayItem.Y, RayItem.Z):
    wanted.mark_as_present(item)

positions = rays.extract_all(rays.items.extraction_map(wanted))
```

### Zemax binary source files

```python
from tm25rays.zemax import ZemaxRaySet
from tm25rays.translate_zemax import tm25_to_zemax, zemax_to_tm25

zemax = ZemaxRaySet.from_file("source.dat")
tm25 = zemax_to_tm25(zemax)
tm25.write("source.TM25RAY")

back = tm25_to_zemax(tm25)
back.write("copy.dat")
```

Zemax files store wavelengths in micrometres; TM-25 files use nanometres.
The conversions take care of this, and coordinates in Zemax files are
converted to millimetres when read.

### 3D vectors and matrices

`tm25rays.linalg3` provides the small `Vec3` and `Mat3` types used for the
geometric calculations, with the usual arithmetic operators, determinants,
inverses, rotation matrices and `solve(a, b)` for 3×3 linear systems.

## What it does not do

- Only the TM-25 and Zemax binary formats are handled; there is no
  conversion to or from other ray file formats.
- Ray files are read into memory whole, so very large files need
  correspondingly much memory.
- The command line only reads and reports; writing and conversion are
  available from Python.