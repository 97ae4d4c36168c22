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
"""Region selectors applied before spatial aggregation."""

import dataclasses
import typing as t

import xarray as xr


@dataclasses.dataclass
class Region:
  """Region selector for spatially aggregated series.

  .apply() is called on gridded data before it is reduced to a single series,
  either by slicing coordinates or by masking points outside the region.
  Masked points become NaN and are skipped by the aggregations.
  """

  def apply(self, data: xr.DataArray) -> xr.DataArray:
    """Returns `data` restricted to the region."""
    raise NotImplementedError


@dataclasses.dataclass
class SliceRegion(Region):
  """Latitude-longitude box selection.

  Attributes:
    lat_slice: One or more latitude slices to be included.
    lon_slice: One or more longitude slices to be included.
  """

  lat_slice: t.Union[slice, list[slice]] = dataclasses.field(
      default_factory=lambda: slice(None, None)
  )
  lon_slice: t.Union[slice, list[slice]] = dataclasses.field(
      default_factory=lambda: slice(None, None)
  )

  def apply(self, data: xr.DataArray) -> xr.DataArray:
    lats = (
        self.lat_slice if isinstance(self.lat_slice, list) else [self.lat_slice]
    )
    lons = (
        self.lon_slice if isinstance(self.lon_slice, list) else [self.lon_slice]
    )
    lats = xr.concat(
        [data.latitude.sel(latitude=s) for s in lats], dim='latitude'
    )
    lons = xr.concat(
        [data.longitude.sel(longitude=s) for s in lons], dim='longitude'
    )
    return data.sel(latitude=lats, longitude=lons)


@dataclasses.dataclass
class MaskRegion(Region):
  """Keeps grid points where a mask is set.

  Useful for irregular regions, e.g. administrative areas rasterized onto the
  data grid.

  Attributes:
    mask: DataArray on (a subset of) the data's spatial coordinates. Non-zero
      values mark points inside the region.
    threshold: If given, points with mask > threshold are kept, which allows
      fractional masks such as land-sea fractions.
  """

  mask: xr.DataArray
  threshold: t.Optional[float] = None

  def apply(self, data: xr.DataArray) -> xr.DataArray:
    mask = self.mask
    for dim in mask.dims:
      if dim in data.coords:
        mask = mask.assign_coords({dim: mask[dim].astype(data[dim].dtype)})
    if self.threshold is not None:
      inside = mask > self.threshold
    else:
      inside = mask.astype(bool)
    return data.where(inside)


@dataclasses.dataclass
class CombinedRegion(Region):
  """Sequentially applies region selections.

  Attributes:
    regions: List of Region instances.
  """

  regions: list[Region] = dataclasses.field(default_factory=list)

  def apply(self, data: xr.DataArray) -> xr.DataArray:
    for region in self.regions:
      data = region.apply(data)
    return data
