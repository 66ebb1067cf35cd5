# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

"""
Options shared by the builders running `relion_refine`.
"""

import re

from rlnq_lib.core.logger import get_logger
from rlnq_lib.core.security import is_path_safe
from rlnq_lib.params.resolver import (
    ParamBag,
    get_bool_param,
    get_float_param,
    get_int_param,
    get_param,
    get_scratch_dir,
)

from .interface import format_number

logger = get_logger(__name__)

# angular sampling -> HEALPix order
HEALPIX_ORDERS = {
    "30 degrees": 0,
    "15 degrees": 1,
    "7.5 degrees": 2,
    "3.7 degrees": 3,
    "1.8 degrees": 4,
    "0.9 degrees": 5,
    "0.5 degrees": 6,
    "0.2 degrees": 7,
    "0.1 degrees": 8,
}

DEFAULT_HEALPIX_ORDER = 2

_DEGREES = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(?:deg(?:rees?)?)?\s*$", re.IGNORECASE)


def get_healpix_order(params: ParamBag, default: int = DEFAULT_HEALPIX_ORDER) -> int:
    """
    Convert the requested angular sampling into a HEALPix order.

    The sampling is one of the labels of `HEALPIX_ORDERS` or a number of
    degrees, which selects the order with the closest sampling.
    Unrecognized values select the default order.
    """
    value = get_param(params, ["initialAngularSampling", "angularSampling"])
    if value is None or isinstance(value, bool):
        return default

    if isinstance(value, str) and value in HEALPIX_ORDERS:
        return HEALPIX_ORDERS[value]

    if isinstance(value, int | float):
        degrees = float(value)
    elif match := _DEGREES.match(str(value)):
        degrees = float(match.group(1))
    else:
        logger.warning(f"Unknown angular sampling '{value}', using HEALPix order {default}.")
        return default

    return min(
        HEALPIX_ORDERS.values(),
        key=lambda order: abs(_sampling_of(order) - degrees),
    )


def _sampling_of(order: int) -> float:
    for label, value in HEALPIX_ORDERS.items():
        if value == order:
            return float(label.split()[0])
    raise KeyError(order)


def get_offset_range(params: ParamBag) -> int:
    return get_int_param(
        params, ["initialOffsetRange", "offsetSearchRange", "offSetRange", "offset_range"], 5
    )


def get_offset_step(params: ParamBag) -> int:
    return get_int_param(
        params, ["initialOffsetStep", "offsetSearchStep", "offSetStep", "offset_step"], 1
    )


def get_regularisation(params: ParamBag) -> float:
    return get_float_param(
        params, ["regularisationParameter", "regularisationParam", "tau2_fudge"], 2
    )


def get_initial_lowpass(params: ParamBag) -> float:
    return get_float_param(params, ["initialLowPassFilter", "lowPassFilter", "ini_high"], 60)


def add_ctf_flags(command: list[str], params: ParamBag) -> None:
    if get_bool_param(params, ["ctfCorrection"], True):
        command.append("--ctf")
    if get_bool_param(params, ["igonreCtf", "ignoreCTFs", "ctf_intact_first_peak"], False):
        command.append("--ctf_intact_first_peak")


def add_io_flags(command: list[str], params: ParamBag, combine_default: bool = False) -> None:
    """Append the disc I/O options."""
    if not get_bool_param(params, ["Useparalleldisc", "useParallelIO"], True):
        command.append("--no_parallel_disc_io")
    if not get_bool_param(params, ["combineIterations"], combine_default):
        command.append("--dont_combine_weights_via_disc")


def add_particle_io_flags(command: list[str], params: ParamBag) -> None:
    """Append pre-reading of particles and the scratch directory."""
    if get_bool_param(params, ["preReadAllParticles", "preread_images"], False):
        command.append("--preread_images")

    scratch = get_scratch_dir(params)
    if scratch is None:
        return
    if not is_path_safe(scratch):
        logger.warning(f"Ignoring scratch directory '{scratch}': contains unsafe characters.")
        return
    command.extend(["--scratch_dir", scratch])


def add_helical_flags(command: list[str], params: ParamBag, refine: bool = False) -> None:
    """
    Append the options of helical reconstruction.

    Args:
        command (list[str]): The command to extend.
        params (ParamBag): The job parameters.
        refine (bool): Also append the local angular search ranges of auto-refinement.
    """
    if not get_bool_param(params, ["helicalReconstruction", "helix"], False):
        return

    command.append("--helix")

    inner = get_float_param(
        params, ["tubeDiameter1", "innerDiameter", "helical_inner_diameter"], -1
    )
    outer = get_float_param(
        params, ["tubeDiameter2", "outerDiameter", "helical_outer_diameter"], -1
    )
    if inner > 0:
        command.extend(["--helical_inner_diameter", format_number(inner)])
    command.extend(["--helical_outer_diameter", format_number(outer)])

    nr_asu = get_int_param(
        params,
        ["numberOfUniqueAsymmetrical", "uniqueAsymmetricalUnits", "helical_nr_asu"],
        1,
    )
    command.extend(["--helical_nr_asu", str(nr_asu)])

    twist = get_float_param(params, ["initialTwist", "helical_twist_initial"], 0)
    rise = get_float_param(params, ["rise", "initialRise", "helical_rise_initial"], 0)
    command.extend(["--helical_twist_initial", format_number(twist)])
    command.extend(["--helical_rise_initial", format_number(rise)])

    central_z = get_float_param(params, ["centralZlength", "helical_z_percentage"], 30)
    command.extend(["--helical_z_percentage", format_number(central_z / 100.0)])

    if refine:
        sigma_tilt = get_float_param(params, ["angularTilt"], 15)
        sigma_psi = get_float_param(params, ["angularPsi"], 10)
        sigma_rot = get_float_param(params, ["angularRot"], -1)
        if sigma_tilt > 0:
            command.extend(["--sigma_tilt", format_number(sigma_tilt)])
        if sigma_psi > 0:
            command.extend(["--sigma_psi", format_number(sigma_psi / 3.0)])
        if sigma_rot > 0:
            command.extend(["--sigma_rot", format_number(sigma_rot / 3.0 / 5.0)])

        local_avg = get_float_param(params, ["rangeFactorOfLocal", "localAveraging"], -1)
        if local_avg > 0:
            command.extend(["--helical_sigma_distance", format_number(local_avg / 3.0)])

    if get_bool_param(params, ["keepTiltPriorFixed", "tiltPrior"], True):
        command.append("--helical_keep_tilt_prior_fixed")

    if not get_bool_param(params, ["helicalSymmetry"], True):
        return
    if not get_bool_param(params, ["localSearches", "localSearchSymmetry"], False):
        return

    command.append("--helical_symmetry_search")
    for flag, names in (
        ("--helical_twist_min", ["twistSearch1", "twistMin", "helical_twist_min"]),
        ("--helical_twist_max", ["twistSearch2", "twistMax", "helical_twist_max"]),
    ):
        command.extend([flag, format_number(get_float_param(params, names, 0))])
    twist_step = get_float_param(params, ["twistSearch3", "twistStep", "helical_twist_inistep"], 0)
    if twist_step > 0:
        command.extend(["--helical_twist_inistep", format_number(twist_step)])

    for flag, names in (
        ("--helical_rise_min", ["riseSearchMin", "riseMin", "helical_rise_min"]),
        ("--helical_rise_max", ["riseSearchMax", "riseMax", "helical_rise_max"]),
    ):
        command.extend([flag, format_number(get_float_param(params, names, 0))])
    rise_step = get_float_param(params, ["riseSearchStep", "riseStep", "helical_rise_inistep"], 0)
    if rise_step > 0:
        command.extend(["--helical_rise_inistep", format_number(rise_step)])
