"""The header of an IES TM-25 ray file: fields, validation, reading and writing."""

from __future__ import annotations

import math
import struct
from dataclasses import dataclass, field
from typing import BinaryIO, Iterator

from tm25rays.binwriter import BinaryWriter

FILE_TYPE = b"TM25"
FILE_VERSION = 2013
FILE_HEADER_SIZE = 256
FLAGS_BLOCK_SIZE = 32
DESCRIPTION_FIELD_BYTES = 4000
DESCRIPTION_BLOCK_SIZE = 9 * DESCRIPTION_FIELD_BYTES
COLUMN_NAME_BYTES = 512
DATE_FIELD_BYTES = 28
RESERVED_BYTES = 168
BLOCK_ALIGNMENT = 32

_FLOAT32_MIN_NORMAL = 1.1754943508222875e-38


class TM25Error(ValueError):
    """Raised for malformed or inconsistent TM-25 data."""


@dataclass
class SpectralTable:
    """One spectral table: wavelengths in nm and their relative weights."""

    idx: int = 0
    wavelengths: list[float] = field(default_factory=list)
    weights: list[float] = field(default_factory=list)


@dataclass(frozen=True)
class SanityCheck:
    """Outcome of checking a header against the rules of the format."""

    fatal_errors: bool
    nonfatal_errors: bool
    msg: str


@dataclass
class TM25Header:
    """All header fields of a TM-25 ray file (sections 4.7.1 to 4.7.6)."""

    version: int = FILE_VERSION
    creation_method: int = 0
    phi_v: float = math.nan
    phi: float = 1.0
    n_rays: int = 0
    file_date_time: str = ""
    start_position: int = 0
    spectrum_type: int = 0
    wavelength: float = 0.0
    lambda_min: float = 0.0
    lambda_max: float = 0.0
    rad_flux_flag: bool = True
    lambda_flag: bool = False
    lum_flux_flag: bool = False
    stokes_flag: bool = False
    tristimulus_flag: bool = False
    spectrum_index_flag: bool = False
    name: str = ""
    manufacturer: str = ""
    model_creator: str = ""
    rayfile_creator: str = ""
    equipment: str = ""
    camera: str = ""
    lightsource: str = ""
    additional_info: str = ""
    data_reference: str = ""
    spectra: list[SpectralTable] = field(default_factory=list)
    column_names: list[str] = field(default_factory=list)
    additional_text: str = ""

    @property
    def n_spectra(self) -> int:
        return len(self.spectra)

    @property
    def n_addtl_items(self) -> int:
        return len(self.column_names)

    def descriptions(self) -> tuple[str, ...]:
        """The nine description texts of block 4.7.3, in file order."""
        return (
            self.name,
            self.manufacturer,
            self.model_creator,
            self.rayfile_creator,
            self.equipment,
            self.camera,
            self.lightsource,
            self.additional_info,
            self.data_reference,
        )

    def sanity_check(self) -> SanityCheck:
        """Check the header; fatal problems make it unusable for a ray file."""
        fatal = []
        nonfatal = []
        for section, is_fatal, message in _header_issues(self):
            (fatal if is_fatal else nonfatal).append(f"{section}: {message}")
        return SanityCheck(bool(fatal), bool(nonfatal), "; ".join(fatal + nonfatal))


def _fmt(x: float) -> str:
    return "nan" if math.isnan(x) else f"{x:f}"


def _is_nonneg_or_nan(x: float) -> bool:
    if math.isnan(x):
        return True
    return x == 0.0 or (math.isfinite(x) and x >= _FLOAT32_MIN_NORMAL)


def _header_issues(h: TM25Header) -> Iterator[tuple[str, bool, str]]:
    """Yield (section, fatal, message) for every rule the header breaks, in file order."""
    if h.version != FILE_VERSION:
        yield "4.7.1.2", True, f"file version should be {FILE_VERSION}, is {h.version}"
    if h.creation_method not in (0, 1):
        yield "4.7.1.3", False, f"creation method should be 0 or 1, is {h.creation_method}"
    if not _is_nonneg_or_nan(h.phi_v):
        yield "4.7.1.4", True, f"luminous flux is not nonnegative or NaN: {_fmt(h.phi_v)}"
    if not _is_nonneg_or_nan(h.phi):
        yield "4.7.1.5", True, f"radiant flux is not nonnegative or NaN: {_fmt(h.phi)}"
    if h.n_rays == 0:
        yield "4.7.1.6", False, "number of rays is zero"
    if not 0 <= h.start_position <= 7:
        yield "4.7.1.8", False, (
            f"header_.start_position not well defined (should be 0..7): {h.start_position}"
        )
    st = h.spectrum_type
    if not 0 <= st <= 4:
        yield "4.7.1.9", True, f"Spectral data identifier must be in [0;4]: {st}"
    if st == 1 and not h.wavelength > 0:
        yield "4.7.1.10", True, (
            "Single wavelength must be positive number if spectral data identifier is 1: "
            f"{_fmt(h.wavelength)}"
        )
    if st >= 2 and not h.lambda_min > 0:
        yield "4.7.1.11", False, (
            f"minimum wavelength should be > 0 when spectral data is present: {_fmt(h.lambda_min)}"
        )
    if st >= 2 and not h.lambda_max > 0:
        yield "4.7.1.12", False, (
            f"maximum wavelength should be > 0 when spectral data is present: {_fmt(h.lambda_max)}"
        )
    if st in (3, 4) and h.n_spectra <= 0:
        yield "4.7.13", True, (
            f"Spectrum identifier ({st}) requires spectral table, but there is none, "
            f"# of tables is: {h.n_spectra}"
        )
    rad, lum = int(h.rad_flux_flag), int(h.lum_flux_flag)
    if st == 2 and not h.lambda_flag:
        yield "4.7.2.4", True, f"wavelength flag must be 1 since spectrum type is 2: {int(h.lambda_flag)}"
    if not (rad or lum):
        yield "4.7.2.5", True, (
            f"luminous flux flag ({lum}) and radiant flux flag ({rad}) cannot be both 0"
        )
    elif st in (2, 4) and not (rad and not lum):
        yield "4.7.2.5", True, (
            f"if spectrum type ({st}) is 2 or 4, then luminous flux flag ({lum}) must be 0 "
            f"and radiant flux flag ({rad}) must be 1"
        )
    if h.stokes_flag and not rad:
        yield "4.7.2.6", True, f"if Stokes flag is 1, then radiant flux flag ({rad}) must be 1"
    if h.tristimulus_flag:
        if not lum:
            yield "4.7.2.7", True, (
                f"if tristimulus flag is 1, then luminous flux flag ({lum}) must be 1"
            )
        if st != 0:
            yield "4.7.2.7", True, f"if tristimulus flag is 1, then spectrum type ({st}) must be 0"
    if h.spectrum_index_flag != (st == 4):
        yield "4.7.2.8", True, (
            f"spectrum index flag ({int(h.spectrum_index_flag)}) set iff spectrum type == 4 ({st})"
        )
    for table_no, table in enumerate(h.spectra, start=1):
        if not table.wavelengths:
            yield "4.7.4", True, (
                f"number of data pairs in spectral table {table_no} (base 1) must be > 0: 0"
            )
        if len(table.wavelengths) != len(table.weights):
            yield "4.7.4", True, (
                f"spectral table {table_no} (base 1) has {len(table.wavelengths)} wavelengths "
                f"but {len(table.weights)} weights"
            )
        for j, (lam, weight) in enumerate(zip(table.wavelengths, table.weights)):
            if not lam > 0.0:
                yield "4.7.4", True, (
                    f"wavelengths in spectral tables must be > 0, violated by {_fmt(lam)} at "
                    f"base 0 position {j} in spectral table base 1 # {table_no}"
                )
            if weight < 0.0:
                yield "4.7.4", True, (
                    f"weights in spectral tables must be >= 0, violated by {_fmt(weight)} at "
                    f"base 0 position {j} in spectral table base 1 # {table_no}"
                )
    if any(not name for name in h.column_names):
        yield "4.7.5", True, "each additional column must have a name with nonzero length"


class _Reader:
    """Reads little-endian fields from a binary stream and tracks the section."""

    def __init__(self, stream: BinaryIO):
        self._stream = stream
        self.section = ""

    def bytes(self, n: int) -> bytes:
        data = self._stream.read(n)
        if len(data) != n:
            raise TM25Error(f"unexpected end of file: wanted {n} bytes, got {len(data)}")
        return data

    def int32(self) -> int:
        return struct.unpack("<i", self.bytes(4))[0]

    def uint64(self) -> int:
        return struct.unpack("<Q", self.bytes(8))[0]

    def float32(self) -> float:
        return struct.unpack("<f", self.bytes(4))[0]

    def utf32(self, n_chars: int) -> str:
        text = self.bytes(4 * n_chars).decode("utf-32-le", errors="replace")
        return text.split("\0", 1)[0]

    def flag(self, what: str) -> bool:
        value = self.int32()
        if value not in (0, 1):
            raise TM25Error(f"{what} ({value}) must be 0 or 1")
        return bool(value)


def read_header(stream: BinaryIO) -> tuple[TM25Header, list[str]]:
    """Read and validate a TM-25 header from a binary stream.

    Returns the header and the list of nonfatal warnings; raises TM25Error
    naming the section at fault if the header is malformed.
    """
    r = _Reader(stream)
    try:
        return _read_header(r)
    except TM25Error as err:
        raise TM25Error(f"wrong file format in section {r.section}, {err}") from err
    except (ValueError, struct.error, OSError) as err:
        raise TM25Error(f"wrong file format in section {r.section}, {err}") from err
    except Exception as err:
        raise TM25Error(f"unknown exception in section {r.section}") from err


def _read_header(r: _Reader) -> tuple[TM25Header, list[str]]:
    h = TM25Header()
    r.section = "4.7.1.1"
    ftype = r.bytes(4)
    if ftype != FILE_TYPE:
        raise TM25Error(f"file type should be TM25, is {ftype.decode('latin-1')}")
    r.section = "4.7.1.2"
    h.version = r.int32()
    if h.version != FILE_VERSION:
        raise TM25Error(f"file version should be {FILE_VERSION}, is {h.version}")
    r.section = "4.7.1.3"
    h.creation_method = r.int32()
    r.section = "4.7.1.4"
    h.phi_v = r.float32()
    r.section = "4.7.1.5"
    h.phi = r.float32()
    r.section = "4.7.1.6"
    h.n_rays = r.uint64()
    r.section = "4.7.1.7"
    h.file_date_time = r.bytes(DATE_FIELD_BYTES).split(b"\0", 1)[0].decode("utf-8", errors="replace")
    r.section = "4.7.1.8"
    h.start_position = r.int32()
    r.section = "4.7.1.9"
    h.spectrum_type = r.int32()
    r.section = "4.7.1.10"
    h.wavelength = r.float32()
    r.section = "4.7.1.11"
    h.lambda_min = r.float32()
    r.section = "4.7.1.12"
    h.lambda_max = r.float32()
    r.section = "4.7.13"
    n_spectra = r.int32()
    r.section = "4.7.14"
    n_addtl = r.int32()
    if n_addtl < 0:
        raise TM25Error(f"# of additional ray items must be >= 0: {n_addtl}")
    r.section = "4.7.15"
    text_size = r.int32()
    if text_size < 0 or text_size % BLOCK_ALIGNMENT != 0:
        raise TM25Error(f"additional text block size must be nonnegative multiple of 32: {text_size}")
    r.section = "4.7.16"
    r.bytes(RESERVED_BYTES)

    r.section = "4.7.2.1"
    position_flag = r.int32()
    if position_flag != 1:
        raise TM25Error(f"position flag must be 1: {position_flag}")
    r.section = "4.7.2.2"
    direction_flag = r.int32()
    if direction_flag != 1:
        raise TM25Error(f"direction flag must be 1: {direction_flag}")
    r.section = "4.7.2.3"
    h.rad_flux_flag = r.flag("radiant flux flag")
    r.section = "4.7.2.4"
    h.lambda_flag = r.flag("wavelength flag")
    r.section = "4.7.2.5"
    h.lum_flux_flag = r.flag("luminous flux flag")
    r.section = "4.7.2.6"
    h.stokes_flag = r.flag("Stokes flag")
    r.section = "4.7.2.7"
    h.tristimulus_flag = r.flag("tristimulus flag")
    r.section = "4.7.2.8"
    h.spectrum_index_flag = r.flag("spectrum index flag")

    texts = []
    for k in range(1, 10):
        r.section = f"4.7.3.{k}"
        texts.append(r.utf32(DESCRIPTION_FIELD_BYTES // 4))
    (
        h.name,
        h.manufacturer,
        h.model_creator,
        h.rayfile_creator,
        h.equipment,
        h.camera,
        h.lightsource,
        h.additional_info,
        h.data_reference,
    ) = texts

    r.section = "4.7.4"
    byte_count = 0
    for table_no in range(1, n_spectra + 1):
        n_pairs = r.int32()
        if n_pairs <= 0:
            raise TM25Error(
                f"number of data pairs in spectral table {table_no} (base 1) must be > 0: {n_pairs}"
            )
        pairs = list(struct.iter_unpack("<2f", r.bytes(8 * n_pairs)))
        h.spectra.append(
            SpectralTable(table_no, [lam for lam, _ in pairs], [w for _, w in pairs])
        )
        byte_count += 4 + 8 * n_pairs
    if byte_count % BLOCK_ALIGNMENT:
        r.bytes(BLOCK_ALIGNMENT - byte_count % BLOCK_ALIGNMENT)

    r.section = "4.7.5"
    h.column_names = [r.utf32(COLUMN_NAME_BYTES // 4) for _ in range(n_addtl)]

    r.section = "4.7.6"
    if text_size > 0:
        h.additional_text = r.utf32(text_size // 4)

    warnings = []
    for section, fatal, message in _header_issues(h):
        if fatal:
            r.section = section
            raise TM25Error(message)
        warnings.append(f"{section}: {message}")
    if n_spectra < 0 and h.spectrum_type in (3, 4):
        r.section = "4.7.13"
        raise TM25Error(
            f"Spectrum identifier ({h.spectrum_type}) requires spectral table, but there is none, "
            f"# of tables is: {n_spectra}"
        )
    return h, warnings


def _additional_text_bytes(text: str) -> int:
    size = 4 * len(text)
    return -(-size // BLOCK_ALIGNMENT) * BLOCK_ALIGNMENT


def write_header(writer: BinaryWriter, header: TM25Header, n_rays: int) -> int:
    """Write the header blocks 4.7.1 to 4.7.6, announcing n_rays rays.

    Returns the number of bytes written.
    """
    h = header
    start = writer.bytes_written()

    def check_size(expected: int, block: str) -> None:
        if writer.bytes_written() - start != expected:
            raise TM25Error(f"write_header: {block} does not end at byte {expected}")

    writer.write_bytes(FILE_TYPE)
    writer.write_int32(h.version)
    writer.write_int32(h.creation_method)
    writer.write_float(h.phi_v)
    writer.write_float(h.phi)
    writer.write_uint64(n_rays)
    date = h.file_date_time.encode("utf-8")[:DATE_FIELD_BYTES]
    writer.write_bytes(date)
    writer.write_zero_bytes(DATE_FIELD_BYTES - len(date))
    writer.write_int32(h.start_position)
    writer.write_int32(h.spectrum_type)
    writer.write_float(h.wavelength)
    writer.write_float(h.lambda_min)
    writer.write_float(h.lambda_max)
    writer.write_int32(h.n_spectra)
    writer.write_int32(h.n_addtl_items)
    text_bytes = _additional_text_bytes(h.additional_text)
    writer.write_int32(text_bytes)
    writer.write_zero_bytes(RESERVED_BYTES)
    check_size(FILE_HEADER_SIZE, "file header block 4.7.1")

    for flag in (
        True,
        True,
        h.rad_flux_flag,
        h.lambda_flag,
        h.lum_flux_flag,
        h.stokes_flag,
        h.tristimulus_flag,
        h.spectrum_index_flag,
    ):
        writer.write_int32(1 if flag else 0)
    check_size(FILE_HEADER_SIZE + FLAGS_BLOCK_SIZE, "known flags block 4.7.2")

    for text in h.descriptions():
        writer.write_utf32_text_block(text, DESCRIPTION_FIELD_BYTES)
    check_size(FILE_HEADER_SIZE + FLAGS_BLOCK_SIZE + DESCRIPTION_BLOCK_SIZE, "description block 4.7.3")

    table_start = writer.bytes_written()
    for table in h.spectra:
        if len(table.wavelengths) != len(table.weights):
            raise TM25Error(f"spectral table {table.idx}: wavelengths and weights differ in length")
        writer.write_int32(len(table.wavelengths))
        writer.write_floats(v for pair in zip(table.wavelengths, table.weights) for v in pair)
    remainder = (writer.bytes_written() - table_start) % BLOCK_ALIGNMENT
    if remainder:
        writer.write_zero_bytes(BLOCK_ALIGNMENT - remainder)

    for name in h.column_names:
        writer.write_utf32_text_block(name, COLUMN_NAME_BYTES)

    writer.write_utf32_text_block(h.additional_text, text_bytes)
    return writer.bytes_written() - start