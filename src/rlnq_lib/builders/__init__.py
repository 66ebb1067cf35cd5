# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

"""
Command builders of the supported job kinds.

Each builder validates the parameter bag of one job kind and translates it
into the argument vector of the corresponding RELION (or third-party) program.
In-process builders perform their work directly in `execute`.
"""

from .auto_picking import AutoPickingBuilder
from .auto_refine import AutoRefineBuilder
from .class_2d import Class2DBuilder
from .class_3d import Class3DBuilder
from .ctf_estimation import CtfEstimationBuilder
from .ctf_refine import CtfRefineBuilder
from .dynamight import DynamightBuilder
from .importer import ImportBuilder
from .initial_model import InitialModelBuilder
from .interface import CommandBuilder, ValidationKind, ValidationResult
from .join_star import JoinStarBuilder
from .link_movies import LinkMoviesBuilder
from .local_resolution import LocalResolutionBuilder
from .manual_pick import ManualPickBuilder
from .manual_select import ManualSelectBuilder
from .mask_create import MaskCreateBuilder
from .model_angelo import ModelAngeloBuilder
from .motion_correction import MotionCorrectionBuilder
from .multibody import MultibodyBuilder
from .particle_extraction import ParticleExtractionBuilder
from .polish import PolishBuilder
from .postprocess import PostProcessBuilder
from .subset import SubsetBuilder
from .subtract import SubtractBuilder

__all__ = [
    "AutoPickingBuilder",
    "AutoRefineBuilder",
    "Class2DBuilder",
    "Class3DBuilder",
    "CommandBuilder",
    "CtfEstimationBuilder",
    "CtfRefineBuilder",
    "DynamightBuilder",
    "ImportBuilder",
    "InitialModelBuilder",
    "JoinStarBuilder",
    "LinkMoviesBuilder",
    "LocalResolutionBuilder",
    "ManualPickBuilder",
    "ManualSelectBuilder",
    "MaskCreateBuilder",
    "ModelAngeloBuilder",
    "MotionCorrectionBuilder",
    "MultibodyBuilder",
    "ParticleExtractionBuilder",
    "PolishBuilder",
    "PostProcessBuilder",
    "SubsetBuilder",
    "SubtractBuilder",
    "ValidationKind",
    "ValidationResult",
]
