from .FluidConfig import FluidConfig, Visualize, ColorMode, TIMESTEPS
from .InputTracker import InputTracker, InputPoint
from .FrameState import FrameState
from .FluidSimulation import FluidSimulation, FluidError
