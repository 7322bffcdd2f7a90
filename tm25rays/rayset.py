"""TM-25 ray sets: ray items, ray validation, reading, writing and analysis."""

from __future__ import annotations

import copy
import math
import os
import random
import struct
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Callable, Iterable, Optional, Sequence, Union

from tm25rays.binwriter import BinaryWriter
from tm25rays.linalg3 import Mat3, Vec3, solve
from tm25rays.tm25header import TM25Error, TM25Header, read_header, write_header

PathLike = Union[str, "os.PathLike[str]"]

_FLOAT32_EPSILON = 2.0 ** -23
_K_EPS = 10 * _FLOAT32_EPSILON
_SINGULAR_LIMIT = 1e-10
_DEFAULT_RAY = (0.0, 0.0, 0.0, 0.0, 0.0, 1.0, 1.0)


class RayItem(IntEnum):
    """The standard ray data items, in the order they appear in a ray record."""

    X = 0
    Y = 1
    Z = 2
    KX = 3
    KY = 4
    KZ = 5
    PHI = 6
    LAMBDA = 7
    TRI_Y = 8
    S1 = 9
    S2 = 10
    S3 = 11
    TRI_X = 12
    TRI_Z = 13
    SPECTRUM_INDEX = 14


class RayWarning(Enum):
    """Problems in a ray that make it questionable but usable."""

    K_NOT_NORMALIZED = "kNotNormalized"
    RAD_FLUX_NOT_POSITIVE = "radFluxNotPositive"
    WAVELENGTH_NOT_POSITIVE = "wavelengthNotPositive"
    LUM_FLUX_NOT_POSITIVE = "lumFluxNotPositive"
    LUM_FLUX_NEGATIVE = "lumFluxNegative"
    TRI_X_NEGATIVE = "triXNegative"
    TRI_Z_NEGATIVE = "triZNegative"


class RayError(Enum):
    """Problems in a ray that make the ray data invalid."""

    SIGNALING_NAN = "signalingNaN"
    S1_NOT_IN_PLUS_MINUS_ONE = "S1NotInPlusMinusOne"
    S2_NOT_IN_PLUS_MINUS_ONE = "S2NotInPlusMinusOne"
    S3_NOT_IN_PLUS_MINUS_ONE = "S3NotInPlusMinusOne"
    S123_NOT_IN_PLUS_MINUS_ONE = "S123NotInPlusMinusOne"


_POSITION_DIRECTION = (RayItem.X, RayItem.Y, RayItem.Z, RayItem.KX, RayItem.KY, RayItem.KZ)
_FLAG_ITEMS = (
    ("rad_flux_flag", (RayItem.PHI,)),
    ("lambda_flag", (RayItem.LAMBDA,)),
    ("lum_flux_flag", (RayItem.TRI_Y,)),
    ("stokes_flag", (RayItem.S1, RayItem.S2, RayItem.S3)),
    ("tristimulus_flag", (RayItem.TRI_X, RayItem.TRI_Z)),
    ("spectrum_index_flag", (RayItem.SPECTRUM_INDEX,)),
)


@dataclass
class RaySetItems:
    """Which standard items a ray record holds, plus a count of additional items."""

    present: set[RayItem] = field(default_factory=set)
    n_additional: int = 0

    @classmethod
    def from_header(cls, header: TM25Header) -> RaySetItems:
        """The items that the flags of a header announce."""
        items = cls(n_additional=header.n_addtl_items)
        for item in _POSITION_DIRECTION:
            items.mark_as_present(item)
        for flag, flagged in _FLAG_ITEMS:
            if getattr(header, flag):
                for item in flagged:
                    items.mark_as_present(item)
        return items

    def mark_as_present(self, item: RayItem) -> None:
        self.present.add(RayItem(item))

    def is_present(self, item: RayItem) -> bool:
        return RayItem(item) in self.present

    def index(self, item: RayItem) -> Optional[int]:
        """Column of the item in a ray record, or None if it is absent."""
        item = RayItem(item)
        if item not in self.present:
            return None
        return sum(1 for p in self.present if p < item)

    def n_total_items(self) -> int:
        return len(self.present) + self.n_additional

    def contains_items(self, other: RaySetItems) -> bool:
        """Whether every item of other is also held here."""
        return other.present <= self.present and other.n_additional <= self.n_additional

    def extraction_map(self, other: RaySetItems) -> list[int]:
        """Columns here that hold the items of other, in the order of other's records."""
        if not self.contains_items(other):
            raise TM25Error("extraction map: not all requested ray items are present")
        columns = [self.index(item) for item in sorted(other.present)]
        base = len(self.present)
        columns.extend(base + j for j in range(other.n_additional))
        return columns


@dataclass(frozen=True)
class RayCheck:
    """Outcome of checking one ray; ray holds the (possibly normalized) values."""

    ray: tuple[float, ...]
    warnings: frozenset[RayWarning]
    errors: frozenset[RayError]

    @property
    def ok(self) -> bool:
        return not self.warnings and not self.errors


def check_ray(ray: Sequence[float], items: RaySetItems, normalize_k: bool = False) -> RayCheck:
    """Check one ray record against the rules of the format.

    With normalize_k, a direction that is not of unit length is scaled to it
    in the returned ray.
    """
    values = [float(v) for v in ray]
    warnings: set[RayWarning] = set()
    errors: set[RayError] = set()
    present = items.is_present

    def val(item: RayItem) -> float:
        return values[items.index(item)]

    k_items = (RayItem.KX, RayItem.KY, RayItem.KZ)
    if all(present(i) for i in k_items):
        columns = [items.index(i) for i in k_items]
        k2 = sum(values[j] * values[j] for j in columns)
        if abs(k2 - 1.0) > _K_EPS:
            warnings.add(RayWarning.K_NOT_NORMALIZED)
            if normalize_k and k2 > 0:
                k = math.sqrt(k2)
                for j in columns:
                    values[j] /= k

    if present(RayItem.PHI) and val(RayItem.PHI) <= 0:
        warnings.add(RayWarning.RAD_FLUX_NOT_POSITIVE)
    if present(RayItem.LAMBDA) and val(RayItem.LAMBDA) <= 0:
        warnings.add(RayWarning.WAVELENGTH_NOT_POSITIVE)
    if present(RayItem.TRI_Y):
        lum = val(RayItem.TRI_Y)
        if not present(RayItem.PHI) and lum <= 0:
            warnings.add(RayWarning.LUM_FLUX_NOT_POSITIVE)
        if present(RayItem.PHI) and lum < 0:
            warnings.add(RayWarning.LUM_FLUX_NEGATIVE)
    if present(RayItem.TRI_X) and val(RayItem.TRI_X) < 0:
        warnings.add(RayWarning.TRI_X_NEGATIVE)
    if present(RayItem.TRI_Z) and val(RayItem.TRI_Z) < 0:
        warnings.add(RayWarning.TRI_Z_NEGATIVE)

    if any(math.isnan(v) for v in values):
        errors.add(RayError.SIGNALING_NAN)

    stokes = (
        (RayItem.S1, RayError.S1_NOT_IN_PLUS_MINUS_ONE),
        (RayItem.S2, RayError.S2_NOT_IN_PLUS_MINUS_ONE),
        (RayItem.S3, RayError.S3_NOT_IN_PLUS_MINUS_ONE),
    )
    for item, error in stokes:
        if present(item) and abs(val(item)) > 1:
            errors.add(error)
    if all(present(item) for item, _ in stokes):
        if sum(val(item) ** 2 for item, _ in stokes) > 1.0:
            errors.add(RayError.S123_NOT_IN_PLUS_MINUS_ONE)

    return RayCheck(tuple(values), frozenset(warnings), frozenset(errors))


@dataclass
class DistanceBin:
    """Rays whose distance from a point is at most dist (and above the previous bin)."""

    dist: float
    n_rays: int = 0
    flux: float = 0.0


@dataclass
class FluxBin:
    """Rays whose flux is at most flux_limit (and above the previous bin)."""

    flux_limit: float
    n_rays: int = 0
    flux_in_bin: float = 0.0


def _bin_index(value: float, maximum: float, n_bins: int) -> int:
    if maximum <= 0:
        return 0
    return max(0, min(math.floor(n_bins * value / maximum), n_bins - 1))


def _loc(ray: Sequence[float]) -> Vec3:
    return Vec3(ray[0], ray[1], ray[2])


def _dir(ray: Sequence[float]) -> Vec3:
    return Vec3(ray[3], ray[4], ray[5])


def _distance2(point: Vec3, ray: Sequence[float]) -> float:
    return (point - _loc(ray)).cross(_dir(ray)).sqr()


class TM25RaySet:
    """A TM-25 header with its ray records.

    A subset of rays may be selected; it is then kept at the front of the
    rays, and counting, analysis and writing apply to it alone.
    """

    def __init__(self, header: Optional[TM25Header] = None, rays: Optional[Iterable[Sequence[float]]] = None):
        if header is None:
            if rays is None:
                rays = [_DEFAULT_RAY]
            rays = [list(r) for r in rays]
            header = TM25Header(n_rays=len(rays))
        else:
            header = copy.deepcopy(header)
        self._header = header
        self._items = RaySetItems.from_header(header)
        n_items = self._items.n_total_items()
        self._rays = [[float(v) for v in r] for r in (rays or [])]
        for i, ray in enumerate(self._rays):
            if len(ray) != n_items:
                raise TM25Error(f"ray {i} has {len(ray)} items, header announces {n_items}")
        self._selection: Optional[int] = None
        self.warnings: list[str] = []

    @property
    def header(self) -> TM25Header:
        """A copy of the header."""
        return copy.deepcopy(self._header)

    @property
    def items(self) -> RaySetItems:
        """A copy of the item layout of the ray records."""
        return RaySetItems(set(self._items.present), self._items.n_additional)

    @property
    def rays(self) -> tuple[tuple[float, ...], ...]:
        """All ray records, selected ones first."""
        return tuple(tuple(r) for r in self._rays)

    @classmethod
    def read(cls, filename: PathLike, normalize_k: bool = False) -> TM25RaySet:
        """Read a TM-25 ray file; nonfatal problems end up in warnings."""
        with open(filename, "rb") as f:
            header, warnings = read_header(f)
            items = RaySetItems.from_header(header)
            n_items = items.n_total_items()
            size = 4 * n_items * header.n_rays
            raw = f.read(size)
        if len(raw) != size:
            raise TM25Error(f"ray data: expected {size} bytes, file holds {len(raw)}")

        first_warning: dict[RayWarning, int] = {}
        first_error: dict[RayError, int] = {}
        rays = []
        for i, values in enumerate(struct.iter_unpack(f"<{n_items}f", raw)):
            result = check_ray(values, items, normalize_k)
            for w in result.warnings:
                first_warning.setdefault(w, i)
            for e in result.errors:
                first_error.setdefault(e, i)
            rays.append(result.ray)

        warnings.extend(
            f"ray data: {w.value}, first occurrence at ray # (base 0) {first_warning[w]}"
            for w in RayWarning
            if w in first_warning
        )
        errors = [
            f"{e.value}, first occurrence at ray # (base 0) {first_error[e]}"
            for e in RayError
            if e in first_error
        ]
        if errors:
            raise TM25Error("ray data:\n" + "\n".join(errors))
        ray_set = cls(header, rays)
        ray_set.warnings = warnings
        return ray_set

    def write(self, filename: PathLike) -> None:
        """Write the header and the selected rays (all if none selected)."""
        check = self._header.sanity_check()
        if check.fatal_errors:
            raise TM25Error(f"write: fatal error in header: {check.msg}")
        if check.nonfatal_errors:
            self.warnings.append(f"write: nonfatal error in header: {check.msg}")
        if len(self._rays) != self._header.n_rays:
            raise TM25Error(
                f"write: nRays mismatch: header says {self._header.n_rays}, "
                f"ray array has {len(self._rays)}"
            )
        n = self.n_rays()
        with BinaryWriter(filename) as w:
            write_header(w, self._header, n)
            for ray in self._rays[:n]:
                w.write_floats(ray)

    def _active(self) -> list[list[float]]:
        return self._rays[: self.n_rays()]

    def make_k_unit(self) -> None:
        """Scale the direction of every selected ray to unit length."""
        for ray in self._active():
            k = math.sqrt(ray[3] ** 2 + ray[4] ** 2 + ray[5] ** 2)
            if k > 0:
                ray[3:6] = [v / k for v in ray[3:6]]

    def n_rays(self) -> int:
        """Number of selected rays, or of all rays if none are selected."""
        if self._header.n_rays != len(self._rays):
            raise TM25Error(
                f"inconsistent ray data size, header says {self._header.n_rays}, "
                f"ray array holds {len(self._rays)}"
            )
        return len(self._rays) if self._selection is None else self._selection

    def n_items(self) -> int:
        return self._items.n_total_items()

    def power_column(self) -> int:
        """Column of the radiant flux, or of the luminous flux if there is none."""
        for item in (RayItem.PHI, RayItem.TRI_Y):
            column = self._items.index(item)
            if column is not None:
                return column
        raise TM25Error("ray file is ill-formed: neither radiant nor luminous flux present")

    def ray_loc_dir_flux(self, i: int) -> tuple[Vec3, Vec3, float]:
        """Position, direction and flux of ray i."""
        if not 0 <= i < self.n_rays():
            raise TM25Error(f"ray index {i} out of range")
        ray = self._rays[i]
        return _loc(ray), _dir(ray), ray[self.power_column()]

    def extract_single(self, em: Sequence[int], i: int) -> list[float]:
        """The values of ray i in the columns em."""
        if not 0 <= i < self.n_rays():
            raise TM25Error(f"ray index {i} out of range")
        ray = self._rays[i]
        width = len(ray)
        if any(not 0 <= j < width for j in em):
            raise TM25Error("extraction map member out of bounds")
        return [ray[j] for j in em]

    def extract_range(self, em: Sequence[int], i_begin: int, i_end: int) -> list[list[float]]:
        """The columns em of the rays i_begin <= i < i_end."""
        if i_begin > i_end:
            raise TM25Error("extract range: i_begin > i_end")
        if i_begin < 0 or i_end > len(self._rays):
            raise TM25Error("extract range: range out of bounds")
        return [self._extract(em, i) for i in range(i_begin, i_end)]

    def _extract(self, em: Sequence[int], i: int) -> list[float]:
        ray = self._rays[i]
        if any(not 0 <= j < len(ray) for j in em):
            raise TM25Error("extraction map member out of bounds")
        return [ray[j] for j in em]

    def extract_all(self, em: Sequence[int]) -> list[list[float]]:
        """The columns em of all rays, selected or not."""
        return self.extract_range(em, 0, len(self._rays))

    def extract_selection(self, em: Sequence[int], idx: Iterable[int]) -> list[list[float]]:
        """The columns em of the rays with the given indices, in that order."""
        result = []
        for i in idx:
            if not 0 <= i < len(self._rays):
                raise TM25Error(f"ray index {i} out of range")
            result.append(self._extract(em, i))
        return result

    def bounding_box(self) -> tuple[Vec3, Vec3]:
        """Lower and upper corners of the box holding all ray start points."""
        if not self._rays:
            raise TM25Error("bounding box of an empty ray set")
        lower = Vec3(*(min(r[c] for r in self._rays) for c in range(3)))
        upper = Vec3(*(max(r[c] for r in self._rays) for c in range(3)))
        return lower, upper

    def virtual_focus(self) -> Vec3:
        """The point closest, in the flux-weighted least-squares sense, to all selected rays.

        For a collimated bundle this is the flux-weighted centre of the start points.
        """
        pc = self.power_column()
        active = self._active()
        eye = Mat3.eye()
        a = Mat3.zeros()
        b = Vec3()
        for ray in active:
            k = _dir(ray).unit()
            m = (eye - k.outer(k)) * ray[pc]
            a = a + m
            b = b + m * _loc(ray)
        if abs(a.det()) >= _SINGULAR_LIMIT:
            return solve(a, b)
        total = sum(ray[pc] for ray in active)
        if total == 0:
            raise TM25Error("virtual focus: selected rays carry no flux")
        centre = Vec3()
        for ray in active:
            centre = centre + ray[pc] * _loc(ray)
        return centre / total

    def max_distance(self, focus: Vec3) -> float:
        """Largest distance of a selected ray's line from focus."""
        return math.sqrt(max((_distance2(focus, r) for r in self._active()), default=0.0))

    def distance_histogram(self, focus: Vec3, n_bins: int) -> list[DistanceBin]:
        """Rays and flux binned by distance of the ray line from focus."""
        if n_bins <= 0:
            raise ValueError(f"number of bins must be positive, got {n_bins}")
        pc = self.power_column()
        md = self.max_distance(focus)
        bins = [DistanceBin((i + 1) * md / n_bins) for i in range(n_bins)]
        for ray in self._active():
            d = math.sqrt(_distance2(focus, ray))
            b = bins[_bin_index(d, md, n_bins)]
            b.n_rays += 1
            b.flux += ray[pc]
        return bins

    def flux_histogram(self, n_bins: int) -> list[FluxBin]:
        """Rays and flux binned by the flux of each ray."""
        if n_bins <= 0:
            raise ValueError(f"number of bins must be positive, got {n_bins}")
        pc = self.power_column()
        active = self._active()
        max_flux = max((r[pc] for r in active), default=0.0)
        max_flux = max(max_flux, 0.0)
        bins = [FluxBin((i + 1) * max_flux / n_bins) for i in range(n_bins)]
        for ray in active:
            flux = ray[pc]
            b = bins[_bin_index(flux, max_flux, n_bins)]
            b.n_rays += 1
            b.flux_in_bin += flux
        return bins

    def select_subset(self, predicate: Callable[[tuple[float, ...]], bool]) -> int:
        """Narrow the selection to the rays for which predicate is true.

        The selected rays are moved to the front; returns their number.
        """
        n = self.n_rays()
        chosen, rest = [], []
        for ray in self._rays[:n]:
            (chosen if predicate(tuple(ray)) else rest).append(ray)
        self._rays[:n] = chosen + rest
        self._selection = len(chosen)
        return self._selection

    def select_max_distance(self, dist: float, point: Vec3) -> int:
        """Narrow the selection to rays passing within dist of point."""
        dist2 = dist * dist
        return self.select_subset(lambda ray: _distance2(point, ray) <= dist2)

    def unselect_subset(self) -> None:
        self._selection = None

    def selection_active(self) -> bool:
        return self._selection is not None

    def shuffle(self, rng: Optional[random.Random] = None) -> None:
        """Shuffle the rays, keeping selected rays apart from unselected ones."""
        rng = rng or random.Random()
        split = self._selection if self._selection is not None else len(self._rays)
        for start, stop in ((0, split), (split, len(self._rays))):
            part = self._rays[start:stop]
            rng.shuffle(part)
            self._rays[start:stop] = part

    def total_selected_power(self) -> float:
        pc = self.power_column()
        return sum(ray[pc] for ray in self._active())

    def diagnostics(self) -> str:
        """A text report: bounding box, virtual focus and histograms."""
        lines = []
        lo, hi = self.bounding_box()
        lines.append(
            f"Bounding Box: x in [{lo.x:g},{hi.x:g}], y in [{lo.y:g},{hi.y:g}], "
            f"z in [{lo.z:g},{hi.z:g}]"
        )
        vf = self.virtual_focus()
        lines.append(f"Virtual Focus: F = [{vf.x:g},{vf.y:g},{vf.z:g}]")
        lines.append(f"Maximum distance: d = {self.max_distance(vf):g}")
        lines.append("Distance histogram:")
        n_total, flux_total = 0, 0.0
        for i, b in enumerate(self.distance_histogram(vf, 10)):
            n_total += b.n_rays
            flux_total += b.flux
            lines.append(
                f"bin {i}: distance <= {b.dist:g}, # of rays = {b.n_rays}/{n_total}, "
                f"flux = {b.flux:g}/{flux_total:g}"
            )
        lines.append(f"total # of rays = {n_total}, total flux = {flux_total:g}")
        lines.append("Flux histogram:")
        n_total, flux_total = 0, 0.0
        for i, b in enumerate(self.flux_histogram(10)):
            n_total += b.n_rays
            flux_total += b.flux_in_bin
            lines.append(
                f"bin {i}: flux <= {b.flux_limit:g}, # of rays = {b.n_rays}/{n_total}, "
                f"flux = {b.flux_in_bin:g}/{flux_total:g}"
            )
        lines.append(f"total # of rays = {n_total}, total flux = {flux_total:g}")
        return "\n".join(lines) + "\n"