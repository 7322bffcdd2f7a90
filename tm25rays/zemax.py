"""Reading and writing Zemax binary source ray files.

A file is a 208-byte header followed by the rays, each of seven floats
(x, y, z, kx, ky, kz, flux) in the flux-only format, or eight floats
(the same plus the wavelength in microns) in the spectral format.
"""

from __future__ import annotations

import os
import struct
import sys
from dataclasses import dataclass, replace
from enum import Enum
from typing import BinaryIO, Iterable, Iterator, Optional, Sequence, Union

from tm25rays.binwriter import BinaryWriter

PathLike = Union[str, "os.PathLike[str]"]

ZEMAX_IDENTIFIER = 1010
HEADER_SIZE = 208
_HEADER_FORMAT = "<iI100s7fI3f3f3f4f4i"
_DESCRIPTION_SIZE = 100
_FLOAT32_MAX = 3.4028234663852886e38
_FLOAT32_MIN = 1.1754943508222875e-38

# Dimension unit flag -> factor to millimetres.
_UNIT_FACTORS = {0: 1000.0, 1: 25.4, 2: 10.0, 3: 25.4 * 12}
_MILLIMETRES = 4


class FormatType(Enum):
    """Whether each ray carries its own wavelength."""

    FLUX_ONLY = 0
    SPECTRAL = 2


class FluxType(Enum):
    """Whether ray flux is radiant (watts) or luminous (lumens)."""

    RADIOMETRIC = 0
    PHOTOMETRIC = 1


@dataclass
class ZemaxHeader:
    """The 208-byte header of a Zemax binary ray file."""

    identifier: int = ZEMAX_IDENTIFIER
    nbr_rays: int = 0
    description: str = "Default Zemax Binary"
    source_flux: float = 1.0
    ray_set_flux: float = 1.0
    wavelength: float = 0.55
    inclination_beg: float = 0.0
    inclination_end: float = 0.0
    azimuth_beg: float = 0.0
    azimuth_end: float = 0.0
    dimension_units: int = _MILLIMETRES
    loc_x: float = 0.0
    loc_y: float = 0.0
    loc_z: float = 0.0
    rot_x: float = 0.0
    rot_y: float = 0.0
    rot_z: float = 0.0
    scale_x: float = 1.0
    scale_y: float = 1.0
    scale_z: float = 1.0
    unused1: float = 0.0
    unused2: float = 0.0
    unused3: float = 0.0
    unused4: float = 0.0
    ray_format_type: int = 0
    flux_type: int = 0
    reserved1: int = 0
    reserved2: int = 0

    def pack(self) -> bytes:
        """The header as 208 little-endian bytes."""
        text = self.description.encode("utf-8")[: _DESCRIPTION_SIZE - 1]
        try:
            return struct.pack(
                _HEADER_FORMAT,
                self.identifier,
                self.nbr_rays,
                text,
                self.source_flux,
                self.ray_set_flux,
                self.wavelength,
                self.inclination_beg,
                self.inclination_end,
                self.azimuth_beg,
                self.azimuth_end,
                self.dimension_units,
                self.loc_x,
                self.loc_y,
                self.loc_z,
                self.rot_x,
                self.rot_y,
                self.rot_z,
                self.scale_x,
                self.scale_y,
                self.scale_z,
                self.unused1,
                self.unused2,
                self.unused3,
                self.unused4,
                self.ray_format_type,
                self.flux_type,
                self.reserved1,
                self.reserved2,
            )
        except struct.error as err:
            raise ValueError(f"cannot pack Zemax header: {err}") from err

    @classmethod
    def unpack(cls, data: bytes) -> ZemaxHeader:
        """Parse a header from exactly 208 bytes."""
        if len(data) != HEADER_SIZE:
            raise ValueError(f"Zemax header must be {HEADER_SIZE} bytes, got {len(data)}")
        fields = list(struct.unpack(_HEADER_FORMAT, data))
        raw = fields[2]
        fields[2] = raw.split(b"\0", 1)[0].decode("utf-8", errors="replace")
        return cls(*fields)


def _chunks(values: Sequence[float], size: int) -> Iterator[tuple]:
    it = iter(values)
    return zip(*[it] * size)


def _read_exact(f: BinaryIO, n: int) -> bytes:
    data = f.read(n)
    if len(data) != n:
        raise ValueError(f"unexpected end of file: wanted {n} bytes, got {len(data)}")
    return data


class ZemaxRaySet:
    """A set of rays with a Zemax binary header.

    Rays are kept with eight values each; in the flux-only format the
    eighth is the header wavelength.
    """

    def __init__(self, header: Optional[ZemaxHeader] = None, raydata: Optional[Iterable[float]] = None):
        header = ZemaxHeader() if header is None else replace(header)
        values = [] if raydata is None else [float(v) for v in raydata]
        spectral = header.ray_format_type == FormatType.SPECTRAL.value
        n_items = 8 if spectral else 7
        n_rays, rest = divmod(len(values), n_items)
        if rest != 0 or n_rays != header.nbr_rays:
            raise ValueError("inconsistent raydata size")
        self._header = header
        self._format_type = FormatType.SPECTRAL if spectral else FormatType.FLUX_ONLY
        self._flux_type = FluxType.PHOTOMETRIC if header.flux_type == 1 else FluxType.RADIOMETRIC
        self._wavelength = header.wavelength
        if spectral:
            self._data = values
        else:
            self._data = [v for ray in _chunks(values, 7) for v in (*ray, header.wavelength)]

    @classmethod
    def from_file(cls, filename: PathLike) -> ZemaxRaySet:
        """Read a ray set from a Zemax binary file."""
        rs = cls()
        rs.read(filename)
        return rs

    @property
    def header(self) -> ZemaxHeader:
        """A copy of the header."""
        return replace(self._header)

    @property
    def data(self) -> tuple[float, ...]:
        """All ray values, eight per ray: x, y, z, kx, ky, kz, flux, wavelength."""
        return tuple(self._data)

    def rays(self) -> Iterator[tuple[float, ...]]:
        """Each ray as an 8-tuple."""
        return _chunks(self._data, 8)

    def description(self) -> str:
        return self._header.description

    def set_description(self, s: str) -> None:
        """Set the description; it is cut to 99 characters."""
        self._header.description = s[: _DESCRIPTION_SIZE - 1]

    def format_type(self) -> FormatType:
        return self._format_type

    def set_format_type(self, ft: FormatType) -> None:
        """Set the format; spectral forces radiometric flux."""
        self._format_type = FormatType(ft)
        if self._format_type is FormatType.SPECTRAL:
            self._flux_type = FluxType.RADIOMETRIC
        self._sync_header_types()

    def flux_type(self) -> FluxType:
        return self._flux_type

    def set_flux_type(self, ft: FluxType) -> None:
        """Set the flux type; photometric forces the flux-only format."""
        self._flux_type = FluxType(ft)
        if self._flux_type is FluxType.PHOTOMETRIC:
            self._format_type = FormatType.FLUX_ONLY
        self._sync_header_types()

    def _sync_header_types(self) -> None:
        self._header.ray_format_type = self._format_type.value
        self._header.flux_type = self._flux_type.value

    def wavelength(self) -> float:
        """The single wavelength in microns; ignored in the spectral format."""
        return self._wavelength

    def set_wavelength(self, lam_microns: float) -> None:
        self._wavelength = lam_microns
        self._header.wavelength = lam_microns

    def min_wavelength(self) -> float:
        """Smallest ray wavelength; the largest float32 if there are no rays."""
        return min((ray[7] for ray in self.rays()), default=_FLOAT32_MAX)

    def max_wavelength(self) -> float:
        """Largest ray wavelength; the smallest normal float32 if there are no rays."""
        return max((ray[7] for ray in self.rays()), default=_FLOAT32_MIN)

    def add_ray(self, x, y, z, kx, ky, kz, flux, lam=None) -> None:
        """Append a ray; without lam the header wavelength is used."""
        if lam is None:
            lam = self._header.wavelength
        self._data.extend(float(v) for v in (x, y, z, kx, ky, kz, flux, lam))
        self._header.nbr_rays = self.n_rays()

    def n_rays(self) -> int:
        return len(self._data) // 8

    def read(self, filename: PathLike) -> None:
        """Replace this ray set by the contents of a Zemax binary file.

        Coordinates are converted to millimetres.
        """
        try:
            with open(filename, "rb") as f:
                header = ZemaxHeader.unpack(_read_exact(f, HEADER_SIZE))
                if header.identifier != ZEMAX_IDENTIFIER:
                    raise ValueError("wrong format identifier in header")
                if header.ray_format_type == FormatType.FLUX_ONLY.value:
                    n_items = 7
                elif header.ray_format_type == FormatType.SPECTRAL.value:
                    n_items = 8
                else:
                    raise ValueError("unknown ray format type in header")
                raw = _read_exact(f, header.nbr_rays * n_items * 4)
                if f.read(1):
                    raise ValueError("expected end of file after reading")
        except ValueError as err:
            raise ValueError(f"error reading Zemax ray file {filename}: {err}") from err

        data: list[float] = []
        for ray in struct.iter_unpack(f"<{n_items}f", raw):
            data.extend(ray)
            if n_items == 7:
                data.append(header.wavelength)

        self._header = header
        self._data = data
        ok, msg = self.header_sanity_check()
        if not ok:
            raise ValueError(f"Zemax ray file {filename}: inconsistent header: {msg}")

        if header.dimension_units != _MILLIMETRES:
            try:
                fac = _UNIT_FACTORS[header.dimension_units]
            except KeyError:
                raise ValueError(f"unknown dimension unit flag {header.dimension_units}") from None
            for start in range(0, len(data), 8):
                data[start] *= fac
                data[start + 1] *= fac
                data[start + 2] *= fac
            header.dimension_units = _MILLIMETRES

        self._format_type = FormatType.FLUX_ONLY if header.ray_format_type == 0 else FormatType.SPECTRAL
        self._flux_type = FluxType.RADIOMETRIC if header.flux_type == 0 else FluxType.PHOTOMETRIC
        self._wavelength = header.wavelength

    def write(self, filename: PathLike) -> None:
        """Write header and rays to a Zemax binary file."""
        n_items = 7 if self._format_type is FormatType.FLUX_ONLY else 8
        with BinaryWriter(filename) as w:
            w.write_bytes(self._header.pack())
            w.write_floats(v for ray in self.rays() for v in ray[:n_items])

    def header_sanity_check(self) -> tuple[bool, str]:
        """Check the header; returns (ok, messages each prefixed by ', ')."""
        h = self._header
        checks = [
            (h.identifier == ZEMAX_IDENTIFIER, "wrong format version ID"),
            (h.nbr_rays == self.n_rays(), "wrong number of rays"),
            (h.ray_format_type in (0, 2), "unknown ray format type"),
            (h.flux_type in (0, 1), "unknown flux type"),
            (
                not (h.ray_format_type == 2 and h.flux_type == 1),
                "flux type cannot be photometric with spectral format type",
            ),
        ]
        failed = [msg for ok, msg in checks if not ok]
        return (not failed, "".join(f", {msg}" for msg in failed))


assert struct.calcsize(_HEADER_FORMAT) == HEADER_SIZE, sys.byteorder