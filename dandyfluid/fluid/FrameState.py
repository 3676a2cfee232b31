from dataclasses import dataclass

from dandyfluid.gl import Fbo


@dataclass
class FrameState:
    """Current logical fields of the simulation.

    Each handle points at the buffer written last for that field. Advection
    reads velocity and color from here, so the state carries across frames
    independent of the pools' rotation.
    """
    velocity: Fbo
    color: Fbo
    divergence: Fbo
    pressure: Fbo
