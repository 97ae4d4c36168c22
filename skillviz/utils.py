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
"""Utility functions for season-year preprocessing."""
from typing import Optional, Sequence, Union

import numpy as np
from skillviz import schema
import xarray as xr


def season_start_month(months: np.ndarray) -> Optional[int]:
  """First month of a season that crosses the calendar year, if any.

  The season is taken to start right after the largest gap between the
  months present. If that gap is the one between December and January, the
  season lies within a single calendar year and None is returned.

  Args:
    months: Month numbers (1-12) found in the data, in any order.

  Returns:
    Start month of a year-crossing season (e.g. 12 for DJF), else None.
  """
  months = np.unique(np.asarray(months, dtype=int))
  if months.size < 2 or months.size == 12:
    return None
  gaps = np.diff(np.concatenate([months, [months[0] + 12]]))
  largest = int(np.argmax(gaps))
  if largest == months.size - 1:
    return None
  return int(months[largest + 1])


def season_months(da: xr.DataArray, dim: str = schema.TIME) -> frozenset[int]:
  """Set of calendar months present along the time dimension."""
  return frozenset(int(m) for m in np.unique(da[dim].dt.month.values))


def season_year(time: xr.DataArray) -> xr.DataArray:
  """Season-year of each timestamp.

  Timestamps of a season that crosses the calendar year are labelled by the
  year in which the season ends, e.g. December 1982 belongs to DJF 1983.

  Args:
    time: DataArray of datetimes.

  Returns:
    Integer DataArray named 'year', aligned with `time`.
  """
  start = season_start_month(time.dt.month.values)
  year = time.dt.year
  if start is not None:
    year = year + (time.dt.month >= start).astype(int)
  return year.rename(schema.YEAR)


def aggregate_years(da: xr.DataArray, dim: str = schema.TIME) -> xr.DataArray:
  """NaN-skipping mean of every season-year, on a 'year' dimension."""
  if schema.YEAR in da.dims:
    return da
  years = season_year(da[dim])
  return da.groupby(years).mean(dim, skipna=True)


def fit_linear_trend(
    da: xr.DataArray,
    dim: str = schema.YEAR,
    exclude: Sequence[int] = (),
) -> tuple[xr.DataArray, xr.DataArray]:
  """Least-squares line along `dim`.

  Missing values are skipped. Series with fewer than two valid values get a
  zero slope.

  Args:
    da: Data with a numeric `dim` coordinate.
    dim: Dimension to fit along.
    exclude: Labels along `dim` left out of the fit, e.g. a target year whose
      value must not inform the trend removed from it.

  Returns:
    (slope, center): slope per unit of `dim`, and the mean of the `dim`
    coordinate over valid values. The fitted line passes through the series
    mean at `center`.
  """
  if len(exclude):
    da = da.where(~da[dim].isin(list(exclude)))
  x = da[dim].astype(float)
  valid = da.notnull()
  coeffs = da.astype(float).polyfit(dim, deg=1, skipna=True)
  slope = coeffs.polyfit_coefficients.sel(degree=1, drop=True)
  slope = slope.where(valid.sum(dim) >= 2, 0.0)
  center = x.where(valid).mean(dim)
  return slope, center


def detrend(
    da: xr.DataArray,
    dim: str = schema.YEAR,
    exclude: Sequence[int] = (),
) -> xr.DataArray:
  """Removes the linear trend along `dim`, keeping the series mean.

  The trend is fitted without the labels in `exclude` and then removed from
  every label, excluded ones included.

  Applying this twice gives the same result as applying it once, up to
  floating point error.
  """
  slope, center = fit_linear_trend(da, dim, exclude)
  trend = slope * (da[dim].astype(float) - center)
  return (da - trend.fillna(0.0)).transpose(*da.dims)


def random_like(
    data: Union[xr.DataArray, xr.Dataset], seed: int = 0
) -> Union[xr.DataArray, xr.Dataset]:
  """Random normal data configured like `data`."""
  rs = np.random.RandomState(seed)
  if isinstance(data, xr.Dataset):
    return data.copy(
        data={k: rs.normal(size=v.shape) for k, v in data.items()}
    )
  return data.copy(data=rs.normal(size=data.shape))
