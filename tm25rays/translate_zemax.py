"""Conversion between Zemax binary ray sets and TM-25 ray sets."""

from __future__ import annotations

import math
from datetime import datetime, timezone

from tm25rays.rayset import RayItem, RaySetItems, TM25RaySet
from tm25rays.tm25header import TM25Header
from tm25rays.zemax import FluxType, FormatType, ZemaxHeader, ZemaxRaySet

RAYFILE_CREATOR = "TM25 ray set tools"
_MICRONS_TO_NM = 1000.0
_NM_TO_MICRONS = 0.001
_MILLIMETRES = 4
_DESCRIPTION_CHARS = 99


def _current_iso8601_utc() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def zemax_to_tm25(zemax_ray_set: ZemaxRaySet) -> TM25RaySet:
    """Build a TM-25 ray set from a Zemax ray set.

    Wavelengths are converted from microns to nanometres. Nonfatal header
    problems are recorded in the additional text; fatal ones raise ValueError.
    """
    zh = zemax_ray_set.header
    spectral = zemax_ray_set.format_type() is FormatType.SPECTRAL
    header = TM25Header(
        n_rays=zemax_ray_set.n_rays(),
        file_date_time=_current_iso8601_utc(),
        name=zh.description,
        rayfile_creator=RAYFILE_CREATOR,
    )
    if spectral:
        header.spectrum_type = 2
        header.wavelength = math.nan
        header.lambda_min = math.nan
        header.lambda_max = math.nan
        header.lambda_flag = True
    else:
        lam_nm = zh.wavelength * _MICRONS_TO_NM
        header.spectrum_type = 1
        header.wavelength = lam_nm
        if zemax_ray_set.n_rays():
            header.lambda_min = zemax_ray_set.min_wavelength() * _MICRONS_TO_NM
            header.lambda_max = zemax_ray_set.max_wavelength() * _MICRONS_TO_NM
        else:
            header.lambda_min = header.lambda_max = lam_nm
        header.lambda_flag = False
    if zemax_ray_set.flux_type() is FluxType.RADIOMETRIC:
        header.phi_v = math.nan
        header.phi = zh.source_flux
        header.rad_flux_flag = True
        header.lum_flux_flag = False
    else:
        header.phi_v = zh.source_flux
        header.phi = math.nan
        header.rad_flux_flag = False
        header.lum_flux_flag = True

    check = header.sanity_check()
    if check.nonfatal_errors:
        header.additional_text += check.msg
    if check.fatal_errors:
        raise ValueError(f"zemax_to_tm25: fatal error in TM25 header sanity check: {check.msg}")

    n_items = 8 if spectral else 7
    rays = []
    for ray in zemax_ray_set.rays():
        values = list(ray[:n_items])
        if spectral:
            values[7] *= _MICRONS_TO_NM
        rays.append(values)
    return TM25RaySet(header, rays)


def tm25_to_zemax(ray_set: TM25RaySet) -> ZemaxRaySet:
    """Build a Zemax ray set from all rays of a TM-25 ray set.

    Wavelengths are converted from nanometres to microns. Raises ValueError
    if the ray set has neither flux flag, or lacks required ray items.
    """
    h = ray_set.header
    zh = ZemaxHeader(
        nbr_rays=h.n_rays,
        description=h.name[:_DESCRIPTION_CHARS],
        dimension_units=_MILLIMETRES,
    )
    mid_nm = (h.lambda_min + h.lambda_max) / 2
    if h.rad_flux_flag:
        zh.flux_type = FluxType.RADIOMETRIC.value
        zh.source_flux = h.phi
        if h.spectrum_type == 2:
            zh.ray_format_type = FormatType.SPECTRAL.value
            lam_nm = mid_nm
        else:
            zh.ray_format_type = FormatType.FLUX_ONLY.value
            lam_nm = h.wavelength
    elif h.lum_flux_flag:
        zh.flux_type = FluxType.PHOTOMETRIC.value
        zh.source_flux = h.phi_v
        zh.ray_format_type = FormatType.FLUX_ONLY.value
        lam_nm = h.wavelength if h.spectrum_type == 1 else mid_nm
    else:
        raise ValueError("tm25_to_zemax: one of radiant or luminous flux flag must be set")
    zh.wavelength = lam_nm * _NM_TO_MICRONS
    zh.ray_set_flux = zh.source_flux

    spectral = zh.ray_format_type == FormatType.SPECTRAL.value
    needed = RaySetItems()
    for item in (RayItem.X, RayItem.Y, RayItem.Z, RayItem.KX, RayItem.KY, RayItem.KZ, RayItem.PHI):
        needed.mark_as_present(item)
    if spectral:
        needed.mark_as_present(RayItem.LAMBDA)
    items = ray_set.items
    if not items.contains_items(needed):
        raise ValueError("tm25_to_zemax: not all required ray items present")
    extracted = ray_set.extract_all(items.extraction_map(needed))

    raydata: list[float] = []
    for ray in extracted:
        raydata.extend(ray[:7])
        if spectral:
            raydata.append(ray[7] * _NM_TO_MICRONS)
    return ZemaxRaySet(zh, raydata)