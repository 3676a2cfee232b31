"""Application settings stored as JSON.

Dataclasses become objects keyed by field name and enums are stored by member
name. Loading walks the field annotations, so nested settings and the fluid
config are rebuilt with their own types. Keys that no field matches are
skipped with a warning.
"""

import dataclasses
import json
import logging
import types
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar, Union, cast
from typing_extensions import get_args, get_origin

from dandyfluid.fluid.FluidConfig import FluidConfig

T = TypeVar("T")


@dataclass
class WindowSettings:
    title: str =         field(default="Dandy Fluid")
    monitor: int =       field(default=0)
    width: int =         field(default=1280)
    height: int =        field(default=720)
    x: int =             field(default=80)
    y: int =             field(default=80)
    fullscreen: bool =   field(default=False)
    fps: int =           field(default=60)
    v_sync: bool =       field(default=True)


@dataclass
class Settings():
    window: WindowSettings = field(default_factory=WindowSettings)
    fluid: FluidConfig = field(default_factory=FluidConfig)
    # run the passes as GLSL in the window, headless rendering always uses numpy
    gpu: bool = True

    # PATHS
    gradient_path: str | None = None

    def save(self, path: str) -> None:
        with open(path, "w") as f:
            json.dump(to_json(self), f, indent=2)

    @classmethod
    def load(cls, path: str) -> 'Settings':
        with open(path, "r") as f:
            return from_json(json.load(f), cls)

    @staticmethod
    def serialize(obj: Any) -> Any:
        return to_json(obj)

    @staticmethod
    def deserialize(data: Any, target_type: type[T]) -> T:
        return from_json(data, target_type)


def to_json(obj: Any) -> Any:
    """Convert settings to plain JSON types."""
    if isinstance(obj, Enum):
        return obj.name
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: to_json(getattr(obj, f.name)) for f in dataclasses.fields(obj)}
    if isinstance(obj, (list, tuple)):
        return [to_json(item) for item in obj]
    if isinstance(obj, dict):
        return {key: to_json(value) for key, value in obj.items()}
    return obj


def from_json(data: Any, target_type: Any) -> Any:
    """Rebuild a value of target_type from JSON data.

    Raises:
        KeyError: If an enum member name is unknown.
        ValueError: If a config rejects a value, like an unknown timestep.
    """
    if data is None:
        return None

    origin: Any = get_origin(target_type)
    if origin in (Union, types.UnionType):
        # Optional[X]: use the first non-None member
        options: list[Any] = [arg for arg in get_args(target_type) if arg is not type(None)]
        return from_json(data, options[0]) if options else data
    if origin is list:
        args: tuple[Any, ...] = get_args(target_type)
        return [from_json(item, args[0]) for item in data] if args else list(data)

    if dataclasses.is_dataclass(target_type):
        field_types: dict[str, Any] = {f.name: f.type for f in dataclasses.fields(target_type) if f.init}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            if key not in field_types:
                logging.warning(f"Settings: ignoring unknown key '{key}' for {target_type.__name__}")
                continue
            field_type: Any = field_types[key]
            kwargs[key] = value if isinstance(field_type, str) else from_json(value, field_type)
        return cast(Any, target_type)(**kwargs)

    if isinstance(target_type, type) and issubclass(target_type, Enum):
        return target_type[data]
    return data
