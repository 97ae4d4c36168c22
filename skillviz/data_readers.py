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
"""Readers turning hindcast and observation stores into standard DataArrays.

Standard data use the dimension names in `schema`: 'member' for ensemble
members, 'time' for timestamps and 'latitude'/'longitude' for grids.
"""
from collections.abc import Sequence
import logging
from typing import Optional

import fsspec
import numpy as np
import pandas as pd
from skillviz import errors
from skillviz import schema
from skillviz import utils
import xarray as xr

# pylint: disable=logging-fstring-interpolation


def open_nc(filename: str) -> xr.Dataset:
  """Open NetCDF file from filesystem."""
  with fsspec.open(filename, 'rb') as f:
    ds = xr.open_dataset(f).load()
  return ds


def open_dataset(path: str) -> xr.Dataset:
  """Open a Zarr store (path ending in .zarr) or a NetCDF file."""
  if path.rstrip('/').endswith('.zarr'):
    return xr.open_zarr(path)
  return open_nc(path)


def make_latitude_increasing(da: xr.DataArray) -> xr.DataArray:
  """Make sure latitude values are increasing. Flip data if necessary."""
  if 'latitude' not in da.dims:
    return da
  lat = da.latitude.values
  if (np.diff(lat) < 0).all():
    da = da.sel(latitude=lat[::-1])
  return da


def make_longitude_positive(da: xr.DataArray) -> xr.DataArray:
  """Map longitudes onto [0, 360), sorted, matching the predefined regions."""
  if 'longitude' not in da.dims:
    return da
  lon = da.longitude.values
  if not (lon < 0).any():
    return da
  logging.info('Converting longitudes from [-180, 180) to [0, 360)')
  da = da.assign_coords(longitude=da.longitude % 360)
  return da.sortby('longitude')


def _ensure_nonempty(da: xr.DataArray, message: str = '') -> None:
  """Make sure data is nonempty."""
  if not da.size:
    raise errors.InputValidationError(
        f'data was empty: {dict(da.sizes)}.  {message}'
    )


def standardize(da: xr.DataArray) -> xr.DataArray:
  """Rename dimensions to the standard names, with increasing latitude and
  longitudes in [0, 360).
  """
  renames = {}
  for alias in schema.MEMBER_ALIASES:
    if alias in da.dims and schema.MEMBER not in da.dims:
      renames[alias] = schema.MEMBER
      break
  for alias, standard in schema.SPATIAL_ALIASES.items():
    if alias in da.dims and standard not in da.dims:
      renames[alias] = standard
  if renames:
    logging.info(f'Renaming dimensions {renames}')
    da = da.rename(renames)
  return make_longitude_positive(make_latitude_increasing(da))


def read_variable(
    path: str,
    variable: str,
    rename_variables: Optional[dict[str, str]] = None,
    years: Optional[Sequence[int]] = None,
    months: Optional[Sequence[int]] = None,
) -> xr.DataArray:
  """Read one variable from a store and standardize it.

  Args:
    path: Zarr or NetCDF path, local or remote.
    variable: Variable to read.
    rename_variables: Optional renames applied to the dataset first.
    years: Season-years to keep.
    months: Calendar months to keep, e.g. (12, 1, 2).

  Returns:
    Standardized DataArray.
  """
  ds = open_dataset(path)
  if rename_variables is not None:
    ds = ds.rename(rename_variables)
  if variable not in ds:
    raise errors.InputValidationError(
        f'{variable!r} not found in {path}: {list(ds.data_vars)}'
    )
  da = standardize(ds[variable])
  if months is not None:
    da = da.isel({schema.TIME: da[schema.TIME].dt.month.isin(months).values})
  if years is not None:
    season_years = utils.season_year(da[schema.TIME])
    da = da.isel({schema.TIME: season_years.isin(years).values})
  _ensure_nonempty(da, f'{variable=} {path=}')
  return da.load()


def from_labelled_series(
    pairs: Sequence[tuple[str, pd.Series]], name: Optional[str] = None
) -> xr.DataArray:
  """Stack labelled time series as the members of an ensemble.

  Args:
    pairs: Ordered (label, series) pairs. Series are indexed by timestamps and
      are aligned on the union of their indexes.
    name: Name of the returned DataArray.

  Returns:
    DataArray with 'member' (labels, in order) and 'time' dimensions.
  """
  if not pairs:
    raise errors.DimensionError('no series given')
  labels = [label for label, _ in pairs]
  if len(set(labels)) != len(labels):
    raise errors.InputValidationError(f'duplicate labels in {labels}')
  frame = pd.concat(dict(pairs), axis=1).sort_index()
  return xr.DataArray(
      frame[labels].to_numpy().T,
      coords={
          schema.MEMBER: labels,
          schema.TIME: pd.DatetimeIndex(frame.index),
      },
      dims=(schema.MEMBER, schema.TIME),
      name=name,
  )
