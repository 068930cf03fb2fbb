"""
Black-oil fluid property evaluators.

Every property accepts plain arrays as well as `ADArray`s, so the same
fluid serves residual evaluation and Jacobian assembly.
"""

import typing

import attrs
import numpy as np

from resad.ad.forward import value_of
from resad.ad.functions import exp, where
from resad.tables import SaturationFunctionTable

__all__ = [
    "ConstantCompressibilityB",
    "LiveOilB",
    "WetGasB",
    "ConstantViscosity",
    "LinearSolubility",
    "CoreyRelativePermeability",
    "BlackOilFluid",
]


@attrs.frozen
class ConstantCompressibilityB:
    """b-factor `b_ref * exp(c * (p - p_ref))` of a phase with constant compressibility."""

    reference_b: float = attrs.field(default=1.0, validator=attrs.validators.gt(0.0))
    compressibility: float = attrs.field(default=0.0, validator=attrs.validators.ge(0.0))
    reference_pressure: float = 0.0

    def __call__(self, pressure: typing.Any, *args: typing.Any) -> typing.Any:
        return self.reference_b * exp(
            self.compressibility * (pressure - self.reference_pressure)
        )


@attrs.frozen
class LiveOilB:
    """
    Oil b-factor with dissolved gas.

    Dissolved gas swells the oil, so `b` shrinks as `1 / (1 + rs_expansion * rs)`.
    """

    reference_b: float = attrs.field(default=1.0, validator=attrs.validators.gt(0.0))
    compressibility: float = attrs.field(default=0.0, validator=attrs.validators.ge(0.0))
    reference_pressure: float = 0.0
    rs_expansion: float = attrs.field(default=0.0, validator=attrs.validators.ge(0.0))

    def __call__(
        self,
        pressure: typing.Any,
        rs: typing.Any = None,
        is_saturated: typing.Optional[np.ndarray] = None,
    ) -> typing.Any:
        b = self.reference_b * exp(
            self.compressibility * (pressure - self.reference_pressure)
        )
        if rs is None:
            return b
        return b / (1.0 + self.rs_expansion * rs)


@attrs.frozen
class WetGasB:
    """Gas b-factor with vaporized oil, shrinking as `1 / (1 + rv_expansion * rv)`."""

    reference_b: float = attrs.field(default=1.0, validator=attrs.validators.gt(0.0))
    compressibility: float = attrs.field(default=0.0, validator=attrs.validators.ge(0.0))
    reference_pressure: float = 0.0
    rv_expansion: float = attrs.field(default=0.0, validator=attrs.validators.ge(0.0))

    def __call__(
        self,
        pressure: typing.Any,
        rv: typing.Any = None,
        is_saturated: typing.Optional[np.ndarray] = None,
    ) -> typing.Any:
        b = self.reference_b * exp(
            self.compressibility * (pressure - self.reference_pressure)
        )
        if rv is None:
            return b
        return b / (1.0 + self.rv_expansion * rv)


@attrs.frozen
class ConstantViscosity:
    value: float = attrs.field(default=1.0, validator=attrs.validators.gt(0.0))

    def __call__(self, pressure: typing.Any, *args: typing.Any) -> float:
        return self.value


@attrs.frozen
class LinearSolubility:
    """Saturated ratio (`rs` or `rv`) growing linearly with pressure."""

    slope: float = attrs.field(default=0.0, validator=attrs.validators.ge(0.0))
    intercept: float = attrs.field(default=0.0, validator=attrs.validators.ge(0.0))

    def __call__(self, pressure: typing.Any) -> typing.Any:
        if self.slope == 0.0:
            return np.full(np.shape(value_of(pressure)), self.intercept)
        return self.slope * pressure + self.intercept


def _normalized(saturation: typing.Any, lower: float, span: float) -> typing.Any:
    """`(s - lower) / span` clamped to [0, 1]."""
    scaled = (saturation - lower) / span
    values = value_of(scaled)
    return where(values <= 0.0, 0.0, where(values >= 1.0, 1.0, scaled))


@attrs.frozen
class CoreyRelativePermeability:
    """
    Corey-type relative permeabilities.

    With all three phases active the oil relative permeability follows the
    ECLIPSE default model, a saturation weighted mean of the oil-water and
    oil-gas curves:

        kro = (sg * krog + (sw - swc) * krow) / (sg + sw - swc)
    """

    water_exponent: float = attrs.field(default=2.0, validator=attrs.validators.ge(1.0))
    oil_water_exponent: float = attrs.field(default=2.0, validator=attrs.validators.ge(1.0))
    oil_gas_exponent: float = attrs.field(default=2.0, validator=attrs.validators.ge(1.0))
    gas_exponent: float = attrs.field(default=2.0, validator=attrs.validators.ge(1.0))
    connate_water_saturation: float = attrs.field(
        default=0.0, validator=attrs.validators.and_(attrs.validators.ge(0.0), attrs.validators.lt(1.0))
    )
    residual_oil_saturation_water: float = attrs.field(
        default=0.0, validator=attrs.validators.and_(attrs.validators.ge(0.0), attrs.validators.lt(1.0))
    )
    residual_oil_saturation_gas: float = attrs.field(
        default=0.0, validator=attrs.validators.and_(attrs.validators.ge(0.0), attrs.validators.lt(1.0))
    )
    critical_gas_saturation: float = attrs.field(
        default=0.0, validator=attrs.validators.and_(attrs.validators.ge(0.0), attrs.validators.lt(1.0))
    )
    max_water_relperm: float = 1.0
    max_oil_relperm: float = 1.0
    max_gas_relperm: float = 1.0
    water_table: typing.Optional[SaturationFunctionTable] = None
    """Tabulated water curve. Replaces the Corey water curve when given."""

    def water(self, sw: typing.Any) -> typing.Any:
        if self.water_table is not None:
            return self.water_table.krw(sw)
        span = 1.0 - self.connate_water_saturation - self.residual_oil_saturation_water
        return self.max_water_relperm * _normalized(
            sw, self.connate_water_saturation, span
        ) ** self.water_exponent

    def gas(self, sg: typing.Any) -> typing.Any:
        span = (
            1.0
            - self.critical_gas_saturation
            - self.connate_water_saturation
            - self.residual_oil_saturation_gas
        )
        return self.max_gas_relperm * _normalized(
            sg, self.critical_gas_saturation, span
        ) ** self.gas_exponent

    def oil_water(self, so: typing.Any) -> typing.Any:
        span = 1.0 - self.connate_water_saturation - self.residual_oil_saturation_water
        return self.max_oil_relperm * _normalized(
            so, self.residual_oil_saturation_water, span
        ) ** self.oil_water_exponent

    def oil_gas(self, so: typing.Any) -> typing.Any:
        span = 1.0 - self.connate_water_saturation - self.residual_oil_saturation_gas
        return self.max_oil_relperm * _normalized(
            so, self.residual_oil_saturation_gas, span
        ) ** self.oil_gas_exponent

    def __call__(
        self,
        sw: typing.Any,
        so: typing.Any,
        sg: typing.Any,
        water: bool = True,
        oil: bool = True,
        gas: bool = True,
    ) -> typing.Tuple[typing.Any, typing.Any, typing.Any]:
        """
        Relative permeabilities of the active phases. Inactive phases get `None`.
        """
        krw = self.water(sw) if water else None
        krg = self.gas(sg) if gas else None
        if not oil:
            return krw, None, krg
        if water and gas:
            krow = self.oil_water(so)
            krog = self.oil_gas(so)
            weight = sg + sw - self.connate_water_saturation
            active = value_of(weight) > 1e-12
            safe_weight = where(active, weight, 1.0)
            kro = where(
                active,
                (sg * krog + (sw - self.connate_water_saturation) * krow) / safe_weight,
                krow,
            )
        elif water:
            kro = self.oil_water(so)
        elif gas:
            kro = self.oil_gas(so)
        else:
            kro = 1.0 + 0.0 * so
        return krw, kro, krg


@attrs.frozen
class BlackOilFluid:
    """
    Pressure dependent black-oil fluid properties and saturation functions.

    b-factors convert reservoir volumes to surface volumes. The oil and gas
    properties take the dissolved/vaporized ratio and a saturated-cell flag as
    extra arguments.
    """

    water_b: typing.Callable[..., typing.Any] = attrs.field(factory=ConstantCompressibilityB)
    """Water b-factor, `water_b(p)`."""
    oil_b: typing.Callable[..., typing.Any] = attrs.field(factory=LiveOilB)
    """Oil b-factor, `oil_b(p, rs, is_saturated)`."""
    gas_b: typing.Callable[..., typing.Any] = attrs.field(factory=WetGasB)
    """Gas b-factor, `gas_b(p, rv, is_saturated)`."""
    water_viscosity: typing.Callable[..., typing.Any] = attrs.field(factory=ConstantViscosity)
    oil_viscosity: typing.Callable[..., typing.Any] = attrs.field(factory=ConstantViscosity)
    gas_viscosity: typing.Callable[..., typing.Any] = attrs.field(factory=ConstantViscosity)
    rs_sat: typing.Callable[[typing.Any], typing.Any] = attrs.field(factory=LinearSolubility)
    """Saturated dissolved gas ratio as a function of pressure."""
    rv_sat: typing.Callable[[typing.Any], typing.Any] = attrs.field(factory=LinearSolubility)
    """Saturated vaporized oil ratio as a function of pressure."""
    relative_permeability: CoreyRelativePermeability = attrs.field(
        factory=CoreyRelativePermeability
    )
    water_surface_density: float = attrs.field(default=1000.0, validator=attrs.validators.gt(0.0))
    oil_surface_density: float = attrs.field(default=800.0, validator=attrs.validators.gt(0.0))
    gas_surface_density: float = attrs.field(default=1.0, validator=attrs.validators.gt(0.0))
    capillary_pressure_ow: typing.Optional[typing.Callable[[typing.Any], typing.Any]] = None
    """Oil-water capillary pressure `pcow(sw)`, `pw = po - pcow`."""
    capillary_pressure_og: typing.Optional[typing.Callable[[typing.Any], typing.Any]] = None
    """Oil-gas capillary pressure `pcog(sg)`, `pg = po + pcog`."""
    pore_volume_multiplier: typing.Optional[typing.Callable[[typing.Any], typing.Any]] = None
    """Rock compaction multiplier of the pore volume as a function of pressure."""
    transmissibility_multiplier: typing.Optional[typing.Callable[[typing.Any], typing.Any]] = None
    """Pressure dependent transmissibility multiplier, evaluated in cells and face averaged."""

    @property
    def surface_densities(self) -> typing.Tuple[float, float, float]:
        return (
            self.water_surface_density,
            self.oil_surface_density,
            self.gas_surface_density,
        )
