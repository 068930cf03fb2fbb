"""Tabulated saturation functions."""

import typing

import attrs
import numpy as np

from resad.ad.functions import interp, where
from resad.errors import ValidationError

__all__ = ["SaturationFunctionTable"]


def _convert_tables(tables: typing.Any) -> typing.Tuple[np.ndarray, ...]:
    if isinstance(tables, np.ndarray) and tables.ndim == 2:
        tables = (tables,)
    return tuple(np.asarray(table, dtype=np.float64) for table in tables)


def _validate_tables(instance, attribute, tables) -> None:
    if not tables:
        raise ValidationError("At least one saturation function table is required")
    for region, table in enumerate(tables):
        if table.ndim != 2 or table.shape[1] != 3 or table.shape[0] < 2:
            raise ValidationError(
                f"Table for region {region} must have at least two rows of (sw, krw, pcow)"
            )
        if np.any(np.diff(table[:, 0]) <= 0.0):
            raise ValidationError(
                f"Water saturations of region {region} must be strictly increasing"
            )
        if np.any(table[:, 1] < 0.0) or np.any(np.diff(table[:, 1]) < 0.0):
            raise ValidationError(
                f"Water relative permeability of region {region} must be non-negative and non-decreasing"
            )


@attrs.frozen
class SaturationFunctionTable:
    """
    Water saturation functions (the SWFN keyword): water relative permeability
    and oil-water capillary pressure tabulated against water saturation.

    One table per saturation region. Values are interpolated linearly and held
    constant outside the table.
    """

    tables: typing.Tuple[np.ndarray, ...] = attrs.field(
        converter=_convert_tables, validator=_validate_tables
    )
    """Per region (rows x 3) tables with columns sw, krw, pcow."""
    regions: typing.Optional[np.ndarray] = attrs.field(default=None, eq=False)
    """Region (table index) of every cell. Defaults to the first table everywhere."""

    def __attrs_post_init__(self) -> None:
        if self.regions is not None:
            regions = np.asarray(self.regions, dtype=np.int64)
            if regions.min() < 0 or regions.max() >= len(self.tables):
                raise ValidationError(
                    f"Saturation regions must lie in [0, {len(self.tables) - 1}]"
                )
            object.__setattr__(self, "regions", regions)

    @property
    def connate_water_saturation(self) -> np.ndarray:
        """First tabulated water saturation of every region."""
        return np.array([table[0, 0] for table in self.tables])

    def _evaluate(
        self, column: int, sw: typing.Any, regions: typing.Optional[np.ndarray]
    ) -> typing.Any:
        if regions is None:
            regions = self.regions
        if regions is None or len(self.tables) == 1:
            table = self.tables[0]
            return interp(sw, table[:, 0], table[:, column])

        regions = np.asarray(regions, dtype=np.int64)
        result = None
        for region, table in enumerate(self.tables):
            values = interp(sw, table[:, 0], table[:, column])
            result = values if result is None else where(regions == region, values, result)
        return result

    def krw(self, sw: typing.Any, regions: typing.Optional[np.ndarray] = None) -> typing.Any:
        """Water relative permeability at water saturation `sw`."""
        return self._evaluate(1, sw, regions)

    def pcow(self, sw: typing.Any, regions: typing.Optional[np.ndarray] = None) -> typing.Any:
        """Oil-water capillary pressure at water saturation `sw`."""
        return self._evaluate(2, sw, regions)
