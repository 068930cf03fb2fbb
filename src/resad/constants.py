"""Physical constants and unit conversion factors (SI based)."""

from contextvars import ContextVar
import typing

import attrs


__all__ = ["Constant", "Constants", "c", "get_constant"]


@attrs.frozen(slots=True)
class Constant:
    """A named value with its unit."""

    value: float
    description: typing.Optional[str] = None
    unit: typing.Optional[str] = None

    def __str__(self) -> str:
        return f"{self.value} {self.unit}" if self.unit else str(self.value)


DEFAULT_CONSTANTS: typing.Dict[str, Constant] = {
    "STANDARD_GRAVITY": Constant(9.80665, "Standard gravitational acceleration", "m/s²"),
    "SATURATION_SUM_TOLERANCE": Constant(
        1e-8, "Largest accepted deviation of the phase saturation sum from one"
    ),
    # Conversion factors to SI
    "DAY": Constant(86400.0, "One day", "s"),
    "BAR": Constant(1e5, "One bar", "Pa"),
    "CENTIPOISE": Constant(1e-3, "One centipoise", "Pa·s"),
    "MILLIDARCY": Constant(9.869232667160130e-16, "One millidarcy", "m²"),
}


class Constants:
    """
    A set of constants, read as attributes.

    Example usage:
    ```python
    constants = Constants(STANDARD_GRAVITY=9.81)
    constants.STANDARD_GRAVITY       # 9.81
    constants["BAR"].unit            # "Pa"
    with constants():
        c.STANDARD_GRAVITY           # 9.81 inside the block
    ```

    :param overrides: Values or `Constant`s replacing or extending the defaults.
    """

    __slots__ = ("_values",)

    def __init__(self, **overrides: typing.Union[float, Constant]) -> None:
        values = dict(DEFAULT_CONSTANTS)
        for name, value in overrides.items():
            values[name] = value if isinstance(value, Constant) else Constant(float(value))
        object.__setattr__(self, "_values", values)

    def __getattr__(self, name: str) -> float:
        try:
            return self._values[name].value
        except KeyError:
            raise AttributeError(f"Unknown constant {name!r}") from None

    def __setattr__(self, name: str, value: typing.Any) -> None:
        raise AttributeError("Constants are read-only, pass overrides to `Constants(...)`")

    def __getitem__(self, name: str) -> Constant:
        return self._values[name]

    def __contains__(self, name: str) -> bool:
        return name in self._values

    def __repr__(self) -> str:
        return f"{type(self).__name__}({len(self._values)} constants)"

    def __call__(self):
        """Make these constants the ones `c` reads for the duration of a `with` block."""
        return _use_constants(self)


_current_constants: ContextVar[Constants] = ContextVar(
    "_current_constants", default=Constants()
)


class _use_constants:
    def __init__(self, constants: Constants) -> None:
        self._constants = constants
        self._token = None

    def __enter__(self) -> Constants:
        self._token = _current_constants.set(self._constants)
        return self._constants

    def __exit__(self, *exc_info) -> None:
        _current_constants.reset(self._token)


class _CurrentConstants:
    def __getattr__(self, name: str) -> float:
        return getattr(_current_constants.get(), name)

    def __getitem__(self, name: str) -> Constant:
        return _current_constants.get()[name]


c = _CurrentConstants()
"""The constants of the current context."""


def get_constant(name: str) -> typing.Optional[Constant]:
    """`Constant` of the current context named `name`, or None."""
    current = _current_constants.get()
    return current[name] if name in current else None
