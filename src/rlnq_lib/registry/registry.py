# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

"""
Registry of the supported job kinds.

The registry is built once from a sequence of `JobTypeDefinition`s and
flattens their aliases into immutable lookup tables. Every alias resolves
to exactly one canonical kind.
"""

from collections.abc import Iterable
from functools import lru_cache
from types import MappingProxyType

from rlnq_lib.builders import (
    AutoPickingBuilder,
    AutoRefineBuilder,
    Class2DBuilder,
    Class3DBuilder,
    CommandBuilder,
    CtfEstimationBuilder,
    CtfRefineBuilder,
    DynamightBuilder,
    ImportBuilder,
    InitialModelBuilder,
    JoinStarBuilder,
    LinkMoviesBuilder,
    LocalResolutionBuilder,
    ManualPickBuilder,
    ManualSelectBuilder,
    MaskCreateBuilder,
    ModelAngeloBuilder,
    MotionCorrectionBuilder,
    MultibodyBuilder,
    ParticleExtractionBuilder,
    PolishBuilder,
    PostProcessBuilder,
    SubsetBuilder,
    SubtractBuilder,
)
from rlnq_lib.core.error import RegistryError, UnknownJobTypeError
from rlnq_lib.core.logger import get_logger

from .definition import ComputeTier, JobTypeDefinition, Validator
from .validators import generic_validator, validate_import

logger = get_logger(__name__)


def _define(
    canonical_id: str,
    builder: type[CommandBuilder],
    tier: str,
    *aliases: str,
    validator: Validator = generic_validator,
) -> JobTypeDefinition:
    return JobTypeDefinition(
        canonical_id=canonical_id,
        builder=builder,
        validator=validator,
        stage_name=builder.stage_name,
        aliases=frozenset((canonical_id, *aliases)),
        compute_tier=ComputeTier.fromStr(tier),
    )


DEFAULT_DEFINITIONS = (
    _define("import", ImportBuilder, "mpi", validator=validate_import),
    _define("link_movies", LinkMoviesBuilder, "local", "linkmovies"),
    _define("motion_correction", MotionCorrectionBuilder, "mpi", "motioncorr"),
    _define("ctf_estimation", CtfEstimationBuilder, "mpi", "ctf", "ctffind"),
    _define("auto_picking", AutoPickingBuilder, "mpi", "autopick"),
    _define("particle_extraction", ParticleExtractionBuilder, "mpi", "extract"),
    _define("class_2d", Class2DBuilder, "gpu", "class2d", "classification_2d"),
    _define("class_3d", Class3DBuilder, "gpu", "class3d", "classification_3d"),
    _define("initial_model", InitialModelBuilder, "gpu", "initialmodel"),
    _define("auto_refine", AutoRefineBuilder, "gpu", "autorefine", "refine3d"),
    _define("postprocess", PostProcessBuilder, "local", "post_process"),
    _define("polish", PolishBuilder, "mpi", "bayesian_polishing"),
    _define("ctf_refine", CtfRefineBuilder, "mpi", "ctfrefine"),
    _define("mask_create", MaskCreateBuilder, "local", "maskcreate"),
    _define("local_resolution", LocalResolutionBuilder, "local", "localres"),
    _define("subtract", SubtractBuilder, "local", "particle_subtraction"),
    _define("join_star", JoinStarBuilder, "local", "joinstar"),
    _define("subset", SubsetBuilder, "local", "subset_selection"),
    _define("multibody", MultibodyBuilder, "gpu", "multi_body"),
    _define("dynamight", DynamightBuilder, "gpu"),
    _define("model_angelo", ModelAngeloBuilder, "gpu", "modelangelo"),
    _define("manual_pick", ManualPickBuilder, "local", "manualpick"),
    _define("manual_class_selection", ManualSelectBuilder, "local", "manualselect"),
)


class JobTypeRegistry:
    """
    Immutable lookup of job kinds by any of their aliases.

    Use `build_registry` to construct an instance.
    """

    def __init__(self, definitions: Iterable[JobTypeDefinition]):
        self._definitions: dict[str, JobTypeDefinition] = {}
        builders: dict[str, type[CommandBuilder]] = {}
        validators: dict[str, Validator] = {}
        stage_names: dict[str, str] = {}
        canonical: dict[str, str] = {}

        for definition in definitions:
            if definition.canonical_id in self._definitions:
                raise RegistryError(f"Job type '{definition.canonical_id}' is defined twice.")
            if definition.canonical_id not in definition.aliases:
                raise RegistryError(
                    f"Aliases of job type '{definition.canonical_id}' do not contain the type itself."
                )

            for alias in sorted(definition.aliases):
                if alias in canonical:
                    raise RegistryError(
                        f"Alias '{alias}' maps to both '{canonical[alias]}' and '{definition.canonical_id}'."
                    )
                builders[alias] = definition.builder
                validators[alias] = definition.validator
                stage_names[alias] = definition.stage_name
                canonical[alias] = definition.canonical_id

            self._definitions[definition.canonical_id] = definition

        self._builders = MappingProxyType(builders)
        self._validators = MappingProxyType(validators)
        self._stage_names = MappingProxyType(stage_names)
        self._canonical = MappingProxyType(canonical)

        logger.debug(
            f"Registered {len(self._definitions)} job types with {len(self._canonical)} aliases."
        )

    def getDefinition(self, job_type: str) -> JobTypeDefinition:
        """
        Get the definition of a job kind.

        Args:
            job_type (str): Canonical identifier or alias.

        Returns:
            JobTypeDefinition: The definition of the kind.

        Raises:
            UnknownJobTypeError: If the name is not registered.
        """
        try:
            return self._definitions[self._canonical[job_type]]
        except KeyError:
            raise UnknownJobTypeError(f"Unknown job type '{job_type}'.") from None

    def getBuilder(self, job_type: str) -> type[CommandBuilder]:
        """Get the command builder class of a job kind."""
        self._ensureKnown(job_type)
        return self._builders[job_type]

    def getValidator(self, job_type: str) -> Validator:
        """Get the parameter validator of a job kind."""
        self._ensureKnown(job_type)
        return self._validators[job_type]

    def getStageName(self, job_type: str) -> str:
        """Get the name of the output directory of a job kind."""
        self._ensureKnown(job_type)
        return self._stage_names[job_type]

    def isValidType(self, job_type: str) -> bool:
        return job_type in self._canonical

    def listAllAliases(self) -> list[str]:
        """Get all accepted names of all job kinds."""
        return list(self._canonical)

    def listCanonicalTypes(self) -> list[str]:
        """Get the canonical identifiers in definition order."""
        return list(self._definitions)

    def _ensureKnown(self, job_type: str) -> None:
        if job_type not in self._canonical:
            raise UnknownJobTypeError(f"Unknown job type '{job_type}'.")


def build_registry(
    definitions: Iterable[JobTypeDefinition] = DEFAULT_DEFINITIONS,
) -> JobTypeRegistry:
    """
    Build a job type registry.

    Args:
        definitions (Iterable[JobTypeDefinition]): Definitions of the job kinds.

    Returns:
        JobTypeRegistry: The registry.

    Raises:
        RegistryError: If a canonical id is missing from its aliases,
            or if an alias is claimed by two kinds.
    """
    return JobTypeRegistry(definitions)


@lru_cache(maxsize=1)
def get_registry() -> JobTypeRegistry:
    """Get the registry of the default job kinds, built on first use."""
    return build_registry()
