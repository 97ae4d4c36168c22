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
"""Tercile thresholds and categorization of ensemble values.

Categories are right-closed intervals: a value equal to a threshold belongs to
the lower category.

  below:    value <= lower
  between:  lower < value <= upper
  above:    value > upper
"""

from collections import abc
import dataclasses
import typing

import numpy as np
import pandas as pd
from skillviz import schema
import xarray as xr

TERCILE_PROBABILITIES = (1 / 3, 2 / 3)
MISSING_CATEGORY = -1


def tercile_thresholds(
    values: xr.DataArray,
    dim: typing.Union[str, abc.Sequence[str], None] = None,
) -> tuple[xr.DataArray, xr.DataArray]:
  """Returns the 1/3 and 2/3 quantiles of `values` along `dim`.

  Quantiles use linear interpolation between order statistics and skip NaN.

  Args:
    values: Reference values.
    dim: Dimension(s) to reduce. Defaults to all dimensions.

  Returns:
    (lower, upper) thresholds.
  """
  q = values.quantile(list(TERCILE_PROBABILITIES), dim=dim, skipna=True)
  return q.isel(quantile=0, drop=True), q.isel(quantile=1, drop=True)


def categorize(
    values: xr.DataArray, lower: xr.DataArray, upper: xr.DataArray
) -> xr.DataArray:
  """Integer category codes: 0 below, 1 between, 2 above, -1 if missing."""
  codes = xr.where(values <= lower, 0, xr.where(values <= upper, 1, 2))
  return xr.where(values.isnull(), MISSING_CATEGORY, codes)


def category_probabilities(
    values: xr.DataArray,
    lower: xr.DataArray,
    upper: xr.DataArray,
    member_dim: str = schema.MEMBER,
) -> xr.DataArray:
  """Fraction of ensemble members falling in each tercile category.

  Missing members are left out of the count. If every member is missing the
  probabilities are NaN.

  Args:
    values: Ensemble values with a `member_dim` dimension.
    lower: Lower tercile threshold, broadcastable against `values`.
    upper: Upper tercile threshold, broadcastable against `values`.
    member_dim: Name of the ensemble dimension.

  Returns:
    Probabilities with a new 'category' dimension, summing to 1 over it.
  """
  codes = categorize(values, lower, upper)
  n_valid = (codes != MISSING_CATEGORY).sum(member_dim)
  counts = xr.concat(
      [(codes == i).sum(member_dim) for i in range(len(schema.CATEGORIES))],
      dim=pd.Index(list(schema.CATEGORIES), name=schema.CATEGORY),
  )
  return counts / n_valid.where(n_valid > 0)


def leave_one_out_thresholds(
    reference: xr.DataArray, target_year: int
) -> tuple[xr.DataArray, xr.DataArray]:
  """Tercile thresholds for every reference year and the target year.

  For a reference year y, thresholds come from all reference years except y
  and the target year. For the target year they come from all reference
  years. No year's own values are used for its thresholds.

  Args:
    reference: Climatological values on a 'year' dimension. Any other
      dimensions (e.g. member) are pooled.
    target_year: Year excluded from every reference set.

  Returns:
    (lower, upper) on a 'year' dimension holding the reference years followed
    by the target year.
  """
  reference_years = [
      int(y) for y in reference[schema.YEAR].values if int(y) != target_year
  ]
  evaluated_years = reference_years + [int(target_year)]
  lowers, uppers = [], []
  for year in evaluated_years:
    keep = [y for y in reference_years if y != year]
    lower, upper = tercile_thresholds(reference.sel({schema.YEAR: keep}))
    lowers.append(lower)
    uppers.append(upper)
  index = pd.Index(evaluated_years, name=schema.YEAR)
  return xr.concat(lowers, dim=index), xr.concat(uppers, dim=index)


@dataclasses.dataclass
class TercileThreshold:
  """Source of the climatology defining tercile thresholds."""

  def reference(
      self, obs: xr.DataArray, hindcast: xr.DataArray
  ) -> xr.DataArray:
    """Returns the climatological values, on a 'year' dimension."""
    raise NotImplementedError

  def compute(
      self, obs: xr.DataArray, hindcast: xr.DataArray, target_year: int
  ) -> tuple[xr.DataArray, xr.DataArray]:
    """Computes leave-one-out thresholds for reference and target years.

    Args:
      obs: Observations on a 'year' dimension (reference years only).
      hindcast: Hindcast with 'member' and 'year' dimensions (reference years
        only).
      target_year: Year excluded from all reference sets.

    Returns:
      (lower, upper) on a 'year' dimension.
    """
    return leave_one_out_thresholds(
        self.reference(obs, hindcast), target_year
    )


@dataclasses.dataclass
class ObservedTercileThreshold(TercileThreshold):
  """Terciles of the observed climatology."""

  def reference(self, obs, hindcast):
    return obs


@dataclasses.dataclass
class HindcastTercileThreshold(TercileThreshold):
  """Terciles of the model climatology, pooling all hindcast members.

  Categorizing members against their own climatology removes the mean model
  bias. Observations are still categorized against observed terciles.
  """

  def reference(self, obs, hindcast):
    return hindcast


def get_threshold_cls(threshold_source: str) -> type[TercileThreshold]:
  """Returns the threshold class for members given the threshold source."""
  if threshold_source == "observations":
    return ObservedTercileThreshold
  elif threshold_source == "hindcast":
    return HindcastTercileThreshold
  else:
    raise NotImplementedError(f"Unknown threshold source: {threshold_source}")


def is_constant(values: xr.DataArray) -> bool:
  """Whether all non-missing values are equal."""
  data = values.values[~np.isnan(values.values)]
  return data.size > 0 and bool(np.all(data == data[0]))
