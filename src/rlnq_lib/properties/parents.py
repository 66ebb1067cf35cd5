# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

"""
Reconstruction of the job graph from input paths.

Upstream jobs are not recorded when a job is submitted. Every downstream job
reads at least one file from the output directory of an upstream job, e.g.
`MotionCorr/Job002/corrected_micrographs.star`, so the parents of a job are
recovered from the job names embedded in its input parameters.
"""

import re
from collections.abc import Iterable

from rlnq_lib.core.common import format_job_name, split_list
from rlnq_lib.core.logger import get_logger
from rlnq_lib.params.resolver import ParamBag, is_missing

logger = get_logger(__name__)

# parameters holding paths to input files
INPUT_FIELDS: tuple[str, ...] = (
    # STAR files
    "inputStarFile", "inputMicrographs", "micrographStarFile",
    "inputCoordinates", "inputParticles", "particlesStarFile",
    "inputMovies", "ctfStarFile", "autopickStarFile",
    "refinementStarFile", "particleStarFile", "inputImages",
    "inputStarMicrograph", "micrographsCtfFile", "coordinatesFile",
    # maps and masks
    "maskFile", "referenceMap", "referenceMask", "inputMap", "inputVolume",
    "halfMap", "halfMap1", "halfMap2", "inputModel", "sharpenedMap",
    "referenceVolume", "solventMask", "inputMask",
    # atomic models
    "inputPdb", "inputPdbFile", "pdbFile",
    # multi-body
    "bodyStarFile",
    # ctf refinement
    "particlesStar", "postProcessStar", "postprocessStar",
    # polishing
    "polishStarFile", "particlesFile", "micrographsFile", "postProcessStarFile",
    # subtraction
    "subtractStarFile", "optimiserStar", "maskOfSignal",
    "inputParticlesStar", "revertParticles",
    # local resolution
    "localresStarFile",
    # joining
    "particlesStarFile1", "particlesStarFile2", "particlesStarFile3", "particlesStarFile4",
    "micrographStarFile1", "micrographStarFile2", "micrographStarFile3", "micrographStarFile4",
    "movieStarFile1", "movieStarFile2", "movieStarFile3", "movieStarFile4",
    # subsets
    "microGraphsStar", "micrographsStar",
    # dynamight
    "micrographs", "inputFile", "checkpointFile", "consensusMap",
    # class selection
    "classFromJob", "selectClassesFromJob",
)

_JOB_NAME = re.compile(r"Job(\d+)", re.IGNORECASE)


def infer_parent_jobs(params: ParamBag, fields: Iterable[str] = INPUT_FIELDS) -> list[str]:
    """
    Return the names of the jobs the given job reads from.

    Explicitly provided `inputJobIds` (a list or a comma/space separated string)
    are returned verbatim and no inference is attempted. Otherwise, each input
    field holding a string is searched for an embedded job name, which is
    normalized to the zero-padded form (`job2` -> `Job002`).

    Args:
        params (ParamBag): The job parameters.
        fields (Iterable[str]): Names of the input fields to scan.

    Returns:
        list[str]: Deduplicated job names in the order of discovery.
    """
    explicit = params.get("inputJobIds")
    if not is_missing(explicit):
        ids = split_list(explicit) if isinstance(explicit, str) else [str(x) for x in explicit]
        if ids:
            return list(dict.fromkeys(ids))

    names: dict[str, None] = {}
    for name in fields:
        value = params.get(name)
        if not isinstance(value, str):
            continue
        if match := _JOB_NAME.search(value):
            names[format_job_name(match.group(1))] = None

    result = list(names)
    if result:
        logger.debug(f"Inferred parent jobs from input paths: {', '.join(result)}.")
    return result
