# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

"""
Parameter resolution for job parameter bags.

`get_param` returns the first synonym whose value is present; a value is
missing when the key is absent, `None`, or an empty string. The value `0`
and the boolean `False` are present values.

The typed variants coerce the found value and fall back to the default
when coercion is impossible. The domain getters at the bottom of this module
encode the synonym lists shared by several command builders. Dropping a
synonym from any of these lists breaks existing callers.
"""

import math
import re
from collections.abc import Mapping, Sequence
from typing import Any

from rlnq_lib.core.config import CFG

# a parameter bag: field name -> scalar or string value
ParamBag = Mapping[str, Any]

_TRUE_STRINGS = frozenset({"yes", "true", "on", "1"})
_FALSE_STRINGS = frozenset({"no", "false", "off", "0"})
_ANSWER_STRINGS = frozenset({"yes", "true", "on", "no", "false", "off"})
_GPU_IDS = re.compile(r"^[0-9,:]+$")


def is_missing(value: Any) -> bool:
    """Return True for values treated as not provided."""
    return value is None or (isinstance(value, str) and value == "")


def get_param(bag: ParamBag, names: Sequence[str], default: Any = None) -> Any:
    """
    Return the value of the first synonym present in the bag.

    Args:
        bag (ParamBag): The parameter bag.
        names (Sequence[str]): Synonyms in order of precedence.
        default (Any): Value returned if no synonym is present.

    Returns:
        Any: The found value or the default.
    """
    for name in names:
        if name in bag and not is_missing(bag[name]):
            return bag[name]
    return default


def _to_float(value: Any) -> float | None:
    """Convert a value to a finite float, or return None. Booleans are not numbers."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None

    return number if math.isfinite(number) else None


def get_int_param(bag: ParamBag, names: Sequence[str], default: int) -> int:
    """
    Return the first present synonym as an integer.

    Fractional values are truncated toward zero. Non-numeric values fall
    back to the default.
    """
    value = get_param(bag, names, None)
    if value is None:
        return default

    if isinstance(value, int) and not isinstance(value, bool):
        return value

    number = _to_float(value)
    return default if number is None else int(number)


def get_float_param(bag: ParamBag, names: Sequence[str], default: float) -> float:
    """Return the first present synonym as a float, falling back to the default."""
    value = get_param(bag, names, None)
    if value is None:
        return default

    number = _to_float(value)
    return default if number is None else number


def get_bool_param(bag: ParamBag, names: Sequence[str], default: bool) -> bool:
    """
    Return the first present synonym as a boolean.

    Native booleans are returned as-is. The strings "yes", "true", "on" and "1"
    are true and "no", "false", "off" and "0" are false (case-insensitive).
    Anything else is converted using its truthiness.
    """
    value = get_param(bag, names, None)
    if value is None:
        return default

    if isinstance(value, bool):
        return value

    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False

    return bool(value)


def get_mpi_procs(bag: ParamBag) -> int:
    """Number of MPI processes requested (at least 1)."""
    return max(
        1,
        get_int_param(
            bag, ["mpiProcs", "runningmpi", "numberOfMpiProcs", "mpi_procs", "nr_mpi"], 1
        ),
    )


def get_threads(bag: ParamBag) -> int:
    """Number of threads per process requested (at least 1)."""
    return max(1, get_int_param(bag, ["numberOfThreads", "threads", "nr_threads"], 1))


def is_gpu_enabled(bag: ParamBag) -> bool:
    """
    Return True if GPU acceleration was requested.

    Explicit toggles take precedence. Without a toggle, a field holding GPU
    indices (or a plain "yes") enables the GPU.
    """
    toggles = ["gpuAcceleration", "GpuAcceleration", "useGpu", "use_gpu"]
    if get_param(bag, toggles) is not None:
        return get_bool_param(bag, toggles, False)

    ids = get_param(bag, ["gpuToUse", "useGPU"])
    if ids is None or isinstance(ids, bool):
        return bool(ids)

    text = re.sub(r"\s+", "", str(ids))
    return bool(_GPU_IDS.match(text)) or text.lower() == "yes"


def get_gpu_ids(bag: ParamBag) -> str:
    """
    GPU indices to pass to the tool.

    Boolean-like values select the first GPU.
    """
    value = get_param(bag, ["gpuToUse", "useGPU", "gpu_ids", "gpu"], "0")
    if isinstance(value, bool):
        return "0"

    text = re.sub(r"\s+", "", str(value))
    if not text or text.lower() in _ANSWER_STRINGS:
        return "0"
    return text


def get_input_star_file(bag: ParamBag) -> str | None:
    """Input particles or micrographs STAR file."""
    return get_param(bag, ["inputStarFile", "input_star_file", "inputParticles"])


def get_continue_from(bag: ParamBag) -> str | None:
    """Optimiser file of a previous run to continue from."""
    return get_param(bag, ["continueFrom", "continue_from"])


def get_mask_diameter(bag: ParamBag, default: float = 200) -> float:
    """Diameter of the circular particle mask in Angstroms."""
    return get_float_param(bag, ["maskDiameter", "particleDiameter", "particle_diameter"], default)


def get_number_of_classes(bag: ParamBag, default: int = 1) -> int:
    """Number of classes for classification jobs."""
    return get_int_param(bag, ["numberOfClasses", "K"], default)


def get_iterations(bag: ParamBag, default: int = 25) -> int:
    """Number of iterations."""
    return get_int_param(bag, ["numberOfIterations", "numberEMIterations", "iter"], default)


def get_pooled_particles(bag: ParamBag, default: int = 3) -> int:
    """Number of pooled particles (at least 1)."""
    return max(
        1,
        get_int_param(
            bag, ["pooledParticles", "numberOfPooledParticle", "nr_pool"], default
        ),
    )


def get_angpix(bag: ParamBag, default: float = 1.0) -> float:
    """Pixel size in Angstroms."""
    return get_float_param(bag, ["angpix", "calibratedPixelSize", "pixelSize"], default)


def get_reference(bag: ParamBag) -> str | None:
    """Reference map."""
    return get_param(bag, ["referenceMap", "ref"])


def get_symmetry(bag: ParamBag) -> str:
    """Point-group symmetry."""
    return str(get_param(bag, ["symmetry", "Symmetry", "sym"], "C1"))


def get_scratch_dir(bag: ParamBag) -> str | None:
    """
    Scratch directory to copy particles to.

    Boolean-like answers to the scratch question carry no directory and are ignored.
    """
    value = get_param(bag, ["copyParticlesToScratch", "scratchDir", "scratch_dir"])
    if value is None or isinstance(value, bool):
        return None

    text = str(value).strip()
    if text.lower() in _TRUE_STRINGS | _FALSE_STRINGS:
        return None
    return text or None


def get_submit_to_queue(bag: ParamBag) -> bool:
    """Whether the job is submitted to the queue rather than run locally."""
    return get_bool_param(
        bag, ["submitToQueue", "SubmitToQueue"], CFG.submission.submit_to_queue_default
    )
