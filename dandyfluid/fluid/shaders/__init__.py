"""Fluid simulation passes."""

from .VelocityInit import VelocityInit
from .ColorInit import ColorInit
from .Advect import Advect
from .TouchShader import TouchShader, MAX_INPUTS, MAX_INPUT_SPEED, MAX_SPEED, pack_inputs, limit_speed
from .TouchForce import TouchForce
from .TouchColor import TouchColor
from .CardForce import CardForce
from .Boundary import Boundary
from .Divergence import Divergence
from .JacobiPressure import JacobiPressure
from .Gradient import Gradient
from .Composition import Composition

__all__ = [
    "VelocityInit",
    "ColorInit",
    "Advect",
    "TouchShader",
    "MAX_INPUTS",
    "MAX_INPUT_SPEED",
    "MAX_SPEED",
    "pack_inputs",
    "limit_speed",
    "TouchForce",
    "TouchColor",
    "CardForce",
    "Boundary",
    "Divergence",
    "JacobiPressure",
    "Gradient",
    "Composition",
]
