"""Live-tunable options of the fluid simulation."""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from dandyfluid.ConfigBase import ConfigBase, config_field


class Visualize(Enum):
    COLOR =         "Color"
    VELOCITY =      "Velocity"
    DIVERGENCE =    "Divergence"
    PRESSURE =      "Pressure"


class ColorMode(Enum):
    NORMAL =        "Normal"
    LUMINANCE =     "Luminance"
    SPECTRAL =      "Spectral"
    GRADIENT =      "Gradient"
    VECTOR =        "Vector"


TIMESTEPS: dict[str, float] = {
    "1/15":  1.0 / 15.0,
    "1/30":  1.0 / 30.0,
    "1/60":  1.0 / 60.0,
    "1/90":  1.0 / 90.0,
    "1/120": 1.0 / 120.0,
}


@dataclass
class FluidConfig(ConfigBase):
    """Configuration for the fluid background."""

    simulate: bool = config_field(True, alias="Simulate",
                                  description="Advance the simulation, otherwise only compose the current state")
    iterations: int = config_field(32, min=1, max=128, alias="Iterations",
                                   description="Jacobi iterations for the pressure solve")
    radius: float = config_field(0.25, min=0.01, max=2.0, alias="Radius",
                                 description="Radius of the input forcing kernel in simulation units")
    scale: float = config_field(0.5, min=0.05, max=1.0, alias="Scale",
                                description="Simulation resolution relative to the viewport")
    color_decay: float = config_field(0.01, min=0.0, max=1.0, alias="ColorDecay",
                                      description="Fraction of dye lost per frame")
    boundaries: bool = config_field(True, alias="Boundaries",
                                    description="Reflect velocity at the edges")
    add_color: bool = config_field(True, alias="AddColor",
                                   description="Paint dye along with input forces")
    visualize: Visualize = config_field(Visualize.COLOR, alias="Visualize",
                                        description="Field shown by the composition pass")
    mode: ColorMode = config_field(ColorMode.SPECTRAL, alias="Mode",
                                   description="Color mapping of the visualized field")
    timestep: str = config_field("1/60", alias="Timestep",
                                 description=f"Fixed simulation timestep, one of {', '.join(TIMESTEPS)}")

    def __post_init__(self) -> None:
        if self.timestep not in TIMESTEPS:
            raise ValueError(f"Invalid timestep '{self.timestep}', expected one of {list(TIMESTEPS)}")
        super().__post_init__()

    @property
    def dt(self) -> float:
        return TIMESTEPS[self.timestep]

    def _parse_value(self, name: str, current: Any, value: Any) -> Any:
        if name == "timestep":
            key: str = str(value).replace(' ', '')
            if key not in TIMESTEPS:
                raise ValueError(f"Invalid timestep '{value}', expected one of {list(TIMESTEPS)}")
            return key
        return super()._parse_value(name, current, value)
