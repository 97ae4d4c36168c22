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
"""Dimension conventions and mock datasets for tests and examples."""
from collections import abc
from typing import Optional

import numpy as np
import numpy.typing as npt
import pandas as pd
import xarray

MEMBER = 'member'
TIME = 'time'
YEAR = 'year'
CATEGORY = 'category'
CATEGORIES = ('below', 'between', 'above')

# Alternative names for the ensemble dimension found in model output.
MEMBER_ALIASES = ('realization', 'number', 'ensemble', 'member_id')
SPATIAL_ALIASES = {'lat': 'latitude', 'lon': 'longitude'}

# December-January-February, in season order.
DJF = (12, 1, 2)


def season_dates(
    start_year: int,
    end_year: int,
    months: abc.Sequence[int] = DJF,
    time_resolution: str = 'daily',
) -> pd.DatetimeIndex:
  """Timestamps of a season for every season-year in [start_year, end_year].

  Seasons crossing the calendar year are labelled by the year in which they
  end, so the 1983 DJF season starts in December 1982.

  Args:
    start_year: First season-year.
    end_year: Last season-year (inclusive).
    months: Months of the season, in season order.
    time_resolution: 'daily' or 'monthly'.

  Returns:
    Sorted DatetimeIndex.
  """
  if time_resolution not in ('daily', 'monthly'):
    raise ValueError(f'unknown {time_resolution=}')
  wraps = months[0] > months[-1]
  pieces = []
  for year in range(start_year, end_year + 1):
    for month in months:
      calendar_year = year - 1 if (wraps and month >= months[0]) else year
      first = pd.Timestamp(year=calendar_year, month=month, day=1)
      if time_resolution == 'monthly':
        pieces.append(pd.DatetimeIndex([first]))
      else:
        pieces.append(
            pd.date_range(first, periods=first.days_in_month, freq='D')
        )
  return pieces[0].append(pieces[1:])


def mock_observations(
    *,
    start_year: int = 1983,
    end_year: int = 2010,
    months: abc.Sequence[int] = DJF,
    time_resolution: str = 'daily',
    spatial_resolution_in_degrees: Optional[float] = None,
    lat_range: tuple[float, float] = (36.0, 44.0),
    lon_range: tuple[float, float] = (-10.0, 4.0),
    name: str = 'tas',
    dtype: npt.DTypeLike = np.float32,
) -> xarray.DataArray:
  """Create a mock observation field with all zeros for testing.

  The defaults mirror a winter (DJF) reanalysis series over Iberia. Without a
  spatial resolution the result is a single series with only a time dimension.
  """
  coords = {
      TIME: season_dates(start_year, end_year, months, time_resolution),
  }
  if spatial_resolution_in_degrees is not None:
    coords['latitude'] = np.arange(
        lat_range[0],
        lat_range[1] + spatial_resolution_in_degrees / 2,
        spatial_resolution_in_degrees,
    )
    coords['longitude'] = np.arange(
        lon_range[0],
        lon_range[1] + spatial_resolution_in_degrees / 2,
        spatial_resolution_in_degrees,
    )
  dims = tuple(coords)
  shape = tuple(coords[dim].size for dim in dims)
  return xarray.DataArray(
      np.zeros(shape, dtype), coords=coords, dims=dims, name=name
  )


def mock_hindcast(*, ensemble_size: int = 24, **kwargs) -> xarray.DataArray:
  """Create a mock hindcast ensemble with all zeros for testing."""
  da = mock_observations(**kwargs)
  return da.expand_dims({MEMBER: np.arange(ensemble_size)}, axis=0)
