# Copyright 2023 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     https://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================
"""Spatial aggregation of gridded or station data to a single series."""
import dataclasses
import logging
import typing as t

import numpy as np
from skillviz import schema
from skillviz.regions import Region
import xarray as xr

NON_SPATIAL_DIMS = (schema.TIME, schema.YEAR, schema.MEMBER)


def spatial_dims(da: xr.DataArray) -> list[str]:
  """Dimensions other than time, year and member."""
  return [str(d) for d in da.dims if d not in NON_SPATIAL_DIMS]


def _assert_increasing(x: np.ndarray):
  if not (np.diff(x) > 0).all():
    raise ValueError(f'array is not increasing: {x}')


def _latitude_cell_bounds(x: np.ndarray) -> np.ndarray:
  pi_over_2 = np.array([np.pi / 2], dtype=x.dtype)
  return np.concatenate([-pi_over_2, (x[:-1] + x[1:]) / 2, pi_over_2])


def _cell_area_from_latitude(points: np.ndarray) -> np.ndarray:
  """Calculate the area overlap as a function of latitude."""
  bounds = _latitude_cell_bounds(points)
  _assert_increasing(bounds)
  upper = bounds[1:]
  lower = bounds[:-1]
  # normalized cell area: integral from lower to upper of cos(latitude)
  return np.sin(upper) - np.sin(lower)


def get_lat_weights(da: xr.DataArray) -> xr.DataArray:
  """Computes latitude/area weights from latitude coordinate of data."""
  latitude = da.latitude.sortby('latitude')
  weights = _cell_area_from_latitude(np.deg2rad(latitude.data.astype(float)))
  weights /= np.mean(weights)
  return latitude.copy(data=weights)


@dataclasses.dataclass
class Aggregation:
  skipna: bool = True

  def aggregate_in_space(self, statistic: xr.DataArray) -> xr.DataArray:
    raise NotImplementedError


@dataclasses.dataclass
class UnweightedAverage(Aggregation):
  """Plain mean over all spatial dimensions, or over `dims` if given."""

  dims: t.Optional[list[str]] = None

  def aggregate_in_space(self, statistic):
    dims = self.dims if self.dims is not None else spatial_dims(statistic)
    return statistic.mean(dims, skipna=self.skipna)


@dataclasses.dataclass
class LatLonAverage(Aggregation):
  """Area-weighted mean over latitude and longitude."""

  def aggregate_in_space(self, statistic):
    weights = get_lat_weights(statistic)
    return statistic.weighted(weights).mean(
        ('latitude', 'longitude'), skipna=self.skipna
    )


@dataclasses.dataclass
class Reduction(Aggregation):
  """Any named xarray reduction over the spatial dimensions, e.g. 'min'."""

  reduction: str = 'mean'

  def aggregate_in_space(self, statistic):
    if self.reduction not in ('mean', 'median', 'min', 'max', 'sum', 'std'):
      raise ValueError(f'unsupported reduction {self.reduction!r}')
    reduce_fn = getattr(statistic, self.reduction)
    return reduce_fn(spatial_dims(statistic), skipna=self.skipna)


def reduce_to_series(
    da: xr.DataArray,
    aggregation: t.Optional[Aggregation] = None,
    region: t.Optional[Region] = None,
    name: str = '',
) -> xr.DataArray:
  """Reduces data with spatial dimensions to a single (per member) series.

  Args:
    da: Data with time (or year) and optional member and spatial dimensions.
    aggregation: How to aggregate in space. Defaults to UnweightedAverage.
    region: Optional region selection applied before aggregation. Ignored
      for data without spatial dimensions, such as station series.
    name: Label used in log messages.

  Returns:
    `da` without spatial dimensions. Data that has none is returned unchanged.
  """
  if not spatial_dims(da):
    return da
  if region is not None:
    da = region.apply(da)
  dims = spatial_dims(da)
  if aggregation is None:
    aggregation = UnweightedAverage()
  logging.warning(
      '%s has spatial dimensions %s; results refer to the spatial aggregate'
      ' (%s) of the input field.',
      name or 'Input',
      dims,
      type(aggregation).__name__,
  )
  return aggregation.aggregate_in_space(da)
