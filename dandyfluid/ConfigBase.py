"""Live-tunable configuration base with named options and change notification.

Fields are declared with config_field(), whose metadata carries the option's
range, display alias and help text. set_option() is the one entry point that
parses and clamps raw values (from key bindings, settings files or a debug
panel). Plain attribute assignment stores the value as given.
"""

from __future__ import annotations

import threading
import warnings
from dataclasses import dataclass, fields, field, Field, MISSING
from enum import Enum
from typing import Any, Callable, overload, TypeVar

T = TypeVar('T')

_TRUE = ('1', 'true', 'yes', 'on')
_FALSE = ('0', 'false', 'no', 'off')


def config_field(
    default: T = MISSING,
    *,
    default_factory: Any = MISSING,
    description: str = "",
    alias: str | None = None,
    label: str | None = None,
    min: float | int | None = None,
    max: float | int | None = None,
) -> T:
    """Declare a config field with option metadata.

    Note: Returns Field at runtime but typed as T for type checker compatibility.

    Args:
        default: Default value
        default_factory: Factory function for mutable defaults
        description: Help text
        alias: Alternative option name accepted by set_option
        label: Display name, generated from the field name if omitted
        min: Lower bound applied by set_option
        max: Upper bound applied by set_option

    Examples:
        >>> iterations: int = config_field(32, min=1, max=128, alias="Iterations")
    """
    metadata: dict[str, Any] = {key: value for key, value in
                                (("description", description), ("alias", alias), ("label", label), ("min", min), ("max", max))
                                if value not in (None, "")}
    return field(default=default, default_factory=default_factory, metadata=metadata)  # type: ignore[return-value]


def _generate_label(name: str) -> str:
    """"color_decay" -> "Color Decay", all-caps parts are kept as they are."""
    return ' '.join(part if part.isupper() and len(part) > 1 else part.capitalize() for part in name.split('_'))


def _normalize(key: str) -> str:
    return key.replace(' ', '').replace('_', '').lower()


@dataclass
class ConfigBase:
    """Dataclass base for configs that change while the program runs.

    Example:
        @dataclass
        class MyConfig(ConfigBase):
            strength: float = config_field(1.0, min=0.0, max=10.0, alias="Strength")

        config = MyConfig()
        config.watch(print, 'strength')
        config.set_option("Strength", "20")     # clamped to 10.0, prints 10.0

    Listeners run on the thread that made the change, outside the lock.
    """

    def __post_init__(self) -> None:
        object.__setattr__(self, '_listeners', set())
        object.__setattr__(self, '_lock', threading.Lock())

        for f in fields(self):
            low, high = f.metadata.get('min'), f.metadata.get('max')
            value = getattr(self, f.name)
            if low is not None and high is not None and not low <= value <= high:
                warnings.warn(f"{self.__class__.__name__}.{f.name}: {value} is outside [{low}, {high}]",
                              UserWarning, stacklevel=3)

        object.__setattr__(self, '_initialized', True)

    def __setattr__(self, name: str, value: Any) -> None:
        """Store a field value and notify listeners.

        Raises:
            AttributeError: If the field is not declared.
        """
        if name.startswith('_'):
            object.__setattr__(self, name, value)
            return
        if name not in self._field_map():
            raise AttributeError(f"Cannot set undeclared attribute '{name}' on {self.__class__.__name__}")
        if not hasattr(self, '_initialized'):
            object.__setattr__(self, name, value)
            return

        with self._lock:  # type: ignore
            object.__setattr__(self, name, value)
            listeners = list(self._listeners)  # type: ignore
        for listener in listeners:
            listener()

    @classmethod
    def _field_map(cls) -> dict[str, Field]:
        return {f.name: f for f in fields(cls)}  # type: ignore[arg-type]

    # OPTIONS
    def resolve_option(self, key: str) -> str:
        """Map a field name, alias or label to the field name, ignoring case, spaces and underscores.

        Raises:
            KeyError: If no field matches the key.
        """
        wanted: str = _normalize(key)
        for name, f in self._field_map().items():
            names = (name, f.metadata.get('alias', ''), f.metadata.get('label', ''))
            if any(candidate and _normalize(candidate) == wanted for candidate in names):
                return name
        raise KeyError(f"Unknown option '{key}' for {self.__class__.__name__}")

    def set_option(self, key: str, value: Any) -> None:
        """Parse, clamp and store a single option.

        Raises:
            KeyError: If the option does not exist.
            ValueError: If the value cannot be converted to the field's type.
        """
        name: str = self.resolve_option(key)
        metadata = self._field_map()[name].metadata
        current: Any = getattr(self, name)
        parsed: Any = self._parse_value(name, current, value)

        if isinstance(parsed, (int, float)) and not isinstance(parsed, bool):
            if metadata.get('min') is not None:
                parsed = max(metadata['min'], parsed)
            if metadata.get('max') is not None:
                parsed = min(metadata['max'], parsed)
            parsed = type(current)(parsed)

        setattr(self, name, parsed)

    def _parse_value(self, name: str, current: Any, value: Any) -> Any:
        """Convert a raw option value to the type of the field's current value."""
        if isinstance(current, Enum):
            enum_type: type[Enum] = type(current)
            if isinstance(value, enum_type):
                return value
            text: str = str(value).lower()
            for member in enum_type:
                if text in (member.name.lower(), str(member.value).lower()):
                    return member
            raise ValueError(f"Invalid value '{value}' for option '{name}', expected one of {[m.name for m in enum_type]}")

        if isinstance(current, bool):
            if not isinstance(value, str):
                return bool(value)
            if value.lower() in _TRUE:
                return True
            if value.lower() in _FALSE:
                return False
            raise ValueError(f"Invalid boolean '{value}' for option '{name}'")

        if isinstance(current, (int, float)):
            try:
                number: float = float(value)
            except (TypeError, ValueError) as e:
                raise ValueError(f"Invalid number '{value}' for option '{name}'") from e
            return int(number) if isinstance(current, int) else number
        return value

    # WATCHING
    @overload
    def watch(self, callback: Callable[[], None], attribute: None = None) -> Callable[[], None]: ...

    @overload
    def watch(self, callback: Callable[[Any], None], attribute: str) -> Callable[[], None]: ...

    def watch(self, callback: Callable, attribute: str | None = None) -> Callable[[], None]:
        """Register a change listener.

        Without an attribute the callback runs after every assignment with no
        arguments. With an attribute it runs with the new value, only when that
        value actually changed.

        Returns:
            Function that removes the listener.

        Raises:
            AttributeError: If the attribute is not a declared field.
        """
        listener: Callable[[], None] = callback
        if attribute is not None:
            if attribute not in self._field_map():
                raise AttributeError(f"Attribute '{attribute}' not found in {self.__class__.__name__}. "
                                     f"Available attributes: {', '.join(self._field_map())}")
            last: list[Any] = [getattr(self, attribute)]

            def listener() -> None:
                value = getattr(self, attribute)
                if value != last[0]:
                    last[0] = value
                    callback(value)

        with self._lock:  # type: ignore
            self._listeners.add(listener)  # type: ignore

        def unwatch() -> None:
            with self._lock:  # type: ignore
                self._listeners.discard(listener)  # type: ignore
        return unwatch

    @overload
    def info(self, attribute: None = None) -> dict[str, dict[str, Any]]: ...

    @overload
    def info(self, attribute: str) -> dict[str, Any]: ...

    def info(self, attribute: str | None = None) -> dict[str, Any] | dict[str, dict[str, Any]]:
        """Option metadata for a debug panel: label, alias, description, range, type, default and value.

        Raises:
            AttributeError: If the attribute is not a declared field.
        """
        result: dict[str, dict[str, Any]] = {}
        for name, f in self._field_map().items():
            default: Any = f.default if f.default is not MISSING else \
                f.default_factory() if f.default_factory is not MISSING else None
            result[name] = {
                "label": _generate_label(name),
                "alias": None,
                "description": "",
                "min": None,
                "max": None,
                **f.metadata,
                "type": f.type,
                "default": default,
                "value": getattr(self, name),
            }

        if attribute is None:
            return result
        if attribute not in result:
            raise AttributeError(f"Attribute '{attribute}' not found in {self.__class__.__name__}")
        return result[attribute]
