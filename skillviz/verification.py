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
"""Tercile verification of seasonal ensemble forecasts.

Given a hindcast ensemble, observations over the same seasons and, optionally,
a forecast ensemble, `verify_terciles` returns

  * the probability of each tercile category (below, between, above) for the
    target year, as the fraction of members falling in it,
  * the ROC skill score of each category over the hindcast period,
  * whether each score is significant at the requested confidence level.

Every hindcast year is categorized against thresholds computed without that
year (leave-one-out), and the target year never enters any threshold or score.
"""
import dataclasses
import logging
import typing as t

import fsspec
import numpy as np
from skillviz import aggregations
from skillviz import config
from skillviz import errors
from skillviz import metrics
from skillviz import schema
from skillviz import thresholds
from skillviz import utils
from skillviz.regions import Region
import xarray as xr

# pylint: disable=logging-fstring-interpolation

DEFAULT_MIN_REFERENCE_YEARS = 5


@dataclasses.dataclass(frozen=True)
class TercileVerification:
  """Result of a tercile verification.

  Attributes:
    year_target: Season-year of the categorized forecast.
    probabilities: Probability of (below, between, above) for the target year.
      Sums to 1.
    scores: ROC skill score per category, in [-1, 1]. NaN when undefined.
    significant: Whether each score is significant at `conf_level`.
    p_values: One-sided Mann-Whitney p-values of the scores.
    thresholds: Lower and upper tercile thresholds used for the target year.
    yearly_probabilities: Leave-one-out probabilities of every scored year,
      with 'year' and 'category' dimensions.
    observed_categories: Observed category code (0, 1, 2) of every scored year.
    conf_level: Confidence level of the significance test.
    score_threshold: Scores at or above this value are highlighted in plots.
  """

  year_target: int
  probabilities: np.ndarray
  scores: np.ndarray
  significant: np.ndarray
  p_values: np.ndarray
  thresholds: tuple[float, float]
  yearly_probabilities: xr.DataArray
  observed_categories: xr.DataArray
  conf_level: float = 0.95
  score_threshold: t.Optional[float] = None

  @property
  def categories(self) -> tuple[str, ...]:
    return schema.CATEGORIES

  @property
  def reference_years(self) -> list[int]:
    return [int(y) for y in self.observed_categories[schema.YEAR].values]

  @property
  def highlighted(self) -> np.ndarray:
    """Scores at or above `score_threshold`."""
    if self.score_threshold is None:
      return np.zeros(len(self.scores), dtype=bool)
    with np.errstate(invalid='ignore'):
      return np.asarray(self.scores >= self.score_threshold)

  def to_dataset(self) -> xr.Dataset:
    """Returns the result as a Dataset on the 'category' dimension."""
    coords = {schema.CATEGORY: list(schema.CATEGORIES)}
    dims = [schema.CATEGORY]
    return xr.Dataset(
        {
            'probability': (dims, self.probabilities),
            'rocss': (dims, self.scores),
            'significant': (dims, self.significant),
            'p_value': (dims, self.p_values),
        },
        coords=coords,
        attrs={
            'year_target': self.year_target,
            'lower_threshold': self.thresholds[0],
            'upper_threshold': self.thresholds[1],
            'conf_level': self.conf_level,
            'reference_years': self.reference_years,
        },
    )


def _validate_data(da: t.Any, name: str) -> None:
  """Checks type, dtype and time axis shared by all inputs."""
  if not isinstance(da, xr.DataArray):
    raise errors.InputValidationError(
        f'{name} must be an xarray.DataArray, got {type(da)}'
    )
  if not np.issubdtype(da.dtype, np.number):
    raise errors.InputValidationError(
        f'{name} must hold numeric data, got {da.dtype=}'
    )
  if schema.TIME in da.dims:
    try:
      da[schema.TIME].dt.month  # pylint: disable=pointless-statement
    except (TypeError, AttributeError) as e:
      raise errors.AlignmentError(
          f'{name} time coordinate is not datetime-like:'
          f' {da[schema.TIME].dtype}'
      ) from e
  elif schema.YEAR not in da.dims:
    raise errors.DimensionError(
        f'{name} needs a {schema.TIME!r} or {schema.YEAR!r} dimension, got'
        f' {da.dims}'
    )


def _validate_ensemble(da: t.Any, name: str) -> None:
  _validate_data(da, name)
  if schema.MEMBER not in da.dims:
    raise errors.DimensionError(
        f'{name} has no {schema.MEMBER!r} dimension: {da.dims}'
    )
  if not da.sizes[schema.MEMBER]:
    raise errors.DimensionError(f'{name} has zero ensemble members')


def _validate_observations(da: t.Any) -> xr.DataArray:
  _validate_data(da, 'obs')
  if schema.MEMBER in da.dims:
    if da.sizes[schema.MEMBER] != 1:
      raise errors.DimensionError(
          f'obs must be a single series, got {da.sizes[schema.MEMBER]}'
          ' members'
      )
    da = da.squeeze(schema.MEMBER, drop=True)
  return da


def _check_seasons(
    reference: xr.DataArray, other: xr.DataArray, name: str
) -> None:
  """Raises if `other` covers different calendar months than the hindcast."""
  if schema.TIME not in reference.dims or schema.TIME not in other.dims:
    return
  expected = utils.season_months(reference)
  found = utils.season_months(other)
  if expected != found:
    raise errors.AlignmentError(
        f'{name} covers months {sorted(found)} but the hindcast covers'
        f' {sorted(expected)}'
    )


def _to_season_years(
    da: xr.DataArray,
    name: str,
    aggregation: t.Optional[aggregations.Aggregation],
    region: t.Optional[Region],
) -> xr.DataArray:
  da = aggregations.reduce_to_series(da, aggregation, region, name=name)
  return utils.aggregate_years(da).astype(float)


def _years(da: xr.DataArray) -> list[int]:
  return [int(y) for y in da[schema.YEAR].values]


def _default_year_target(
    hindcast: xr.DataArray, forecast: t.Optional[xr.DataArray]
) -> int:
  if forecast is not None:
    forecast_years = _years(forecast)
    if len(forecast_years) != 1:
      raise errors.AlignmentError(
          f'forecast spans season-years {forecast_years}; pass year_target'
      )
    return forecast_years[0]
  has_data = hindcast.notnull().any(schema.MEMBER)
  if not has_data.any():
    raise errors.AlignmentError('hindcast has no valid data in any year')
  return int(hindcast[schema.YEAR].where(has_data, drop=True).max())


def _target_values(
    hindcast: xr.DataArray,
    forecast: t.Optional[xr.DataArray],
    year_target: int,
) -> xr.DataArray:
  """Ensemble values categorized for the target year."""
  source, name = (
      (hindcast, 'hindcast') if forecast is None else (forecast, 'forecast')
  )
  if year_target not in _years(source):
    raise errors.AlignmentError(
        f'{year_target=} not available in {name} years {_years(source)}'
    )
  values = source.sel({schema.YEAR: year_target}, drop=True)
  if not values.notnull().any():
    raise errors.AlignmentError(
        f'{name} has no valid members for {year_target=}'
    )
  return values


def _reference_years(
    hindcast: xr.DataArray, obs: xr.DataArray, year_target: int
) -> list[int]:
  """Years with both hindcast and observed data, excluding the target."""
  hindcast_years = set(_years(hindcast))
  obs_years = set(_years(obs))
  common = sorted(hindcast_years & obs_years)
  if not common:
    raise errors.AlignmentError(
        f'hindcast years {sorted(hindcast_years)} and observed years'
        f' {sorted(obs_years)} do not overlap'
    )
  without_obs = sorted(hindcast_years - obs_years - {year_target})
  if without_obs:
    logging.warning(
        f'Excluding hindcast years without observations: {without_obs}'
    )

  hindcast_valid = hindcast.notnull().any(schema.MEMBER)
  obs_valid = obs.notnull()
  reference = []
  for year in common:
    if year == year_target:
      continue
    if not bool(hindcast_valid.sel({schema.YEAR: year})):
      logging.warning(f'Excluding year {year}: no valid hindcast members')
    elif not bool(obs_valid.sel({schema.YEAR: year})):
      logging.warning(f'Excluding year {year}: missing observation')
    else:
      reference.append(year)
  return reference


def verify_terciles(
    hindcast: xr.DataArray,
    obs: xr.DataArray,
    forecast: t.Optional[xr.DataArray] = None,
    *,
    year_target: t.Optional[int] = None,
    detrend: bool = False,
    conf_level: float = 0.95,
    score_threshold: t.Optional[float] = None,
    min_reference_years: int = DEFAULT_MIN_REFERENCE_YEARS,
    threshold_source: str = 'observations',
    aggregation: t.Optional[aggregations.Aggregation] = None,
    region: t.Optional[Region] = None,
) -> TercileVerification:
  """Tercile probabilities and ROC skill scores of an ensemble forecast.

  Args:
    hindcast: Ensemble with 'member' and 'time' (or 'year') dimensions and
      optional spatial dimensions.
    obs: Observations with 'time' (or 'year') and optional spatial dimensions,
      covering the same months as the hindcast.
    forecast: Optional ensemble for the target year. Without it, the
      hindcast's target year is categorized.
    year_target: Season-year to categorize. Defaults to the forecast's year,
      or the last hindcast year.
    detrend: Remove the linear trend of every series over the hindcast period
      before categorization. Trends are fitted without the target year, whose
      observation must not inform the thresholds it is scored against. The
      forecast is shifted by the trend of the hindcast ensemble mean.
    conf_level: Confidence level of the significance test.
    score_threshold: Scores at or above it are highlighted in plots.
    min_reference_years: Fewest years with both hindcast and observations,
      target excluded, needed to form terciles.
    threshold_source: 'observations' to categorize members against observed
      terciles, or 'hindcast' to use the model's own climatology.
    aggregation: Spatial aggregation for gridded inputs. Defaults to an
      unweighted mean.
    region: Optional region selected before spatial aggregation.

  Returns:
    TercileVerification.

  Raises:
    InputValidationError: Non-numeric data or invalid parameters.
    DimensionError: Missing dimensions or empty ensembles.
    AlignmentError: Inconsistent seasons or years between inputs.
    InsufficientDataError: Fewer than `min_reference_years` reference years.
    ZeroVarianceError: Constant observations over the reference years.
  """
  if not 0 < conf_level < 1:
    raise errors.InputValidationError(f'{conf_level=} must be in (0, 1)')
  if min_reference_years < 3:
    raise errors.InputValidationError(
        f'{min_reference_years=} must be at least 3'
    )
  if score_threshold is not None and not -1 <= score_threshold <= 1:
    raise errors.InputValidationError(f'{score_threshold=} outside [-1, 1]')
  member_threshold = thresholds.get_threshold_cls(threshold_source)()

  _validate_ensemble(hindcast, 'hindcast')
  obs = _validate_observations(obs)
  _check_seasons(hindcast, obs, 'obs')
  if forecast is not None:
    _validate_ensemble(forecast, 'forecast')
    _check_seasons(hindcast, forecast, 'forecast')

  hindcast = _to_season_years(hindcast, 'hindcast', aggregation, region)
  obs = _to_season_years(obs, 'obs', aggregation, region)
  if forecast is not None:
    forecast = _to_season_years(forecast, 'forecast', aggregation, region)
  hindcast_years = set(_years(hindcast))
  outside = [y for y in _years(obs) if y not in hindcast_years]
  if outside:
    logging.info(f'Ignoring observed years outside the hindcast: {outside}')
    obs = obs.sel(
        {schema.YEAR: [y for y in _years(obs) if y in hindcast_years]}
    )

  if year_target is None:
    year_target = _default_year_target(hindcast, forecast)
  year_target = int(year_target)

  if detrend:
    # Trends are fitted without the target year.
    exclude = [year_target]
    slope, center = utils.fit_linear_trend(
        hindcast.mean(schema.MEMBER, skipna=True), exclude=exclude
    )
    hindcast = utils.detrend(hindcast, exclude=exclude)
    if obs.sizes[schema.YEAR]:
      obs = utils.detrend(obs, exclude=exclude)
    if forecast is not None:
      forecast = forecast - slope * (forecast[schema.YEAR] - center)

  target_values = _target_values(hindcast, forecast, year_target)
  reference_years = _reference_years(hindcast, obs, year_target)
  if len(reference_years) < min_reference_years:
    raise errors.InsufficientDataError(
        f'{len(reference_years)} reference years {reference_years} available,'
        f' at least {min_reference_years} required'
    )

  selection = {schema.YEAR: reference_years}
  obs_reference = obs.sel(selection)
  hindcast_reference = hindcast.sel(selection)
  if thresholds.is_constant(obs_reference):
    raise errors.ZeroVarianceError(
        'observations are constant over reference years'
        f' {reference_years}: {float(obs_reference[0])}'
    )

  obs_lower, obs_upper = thresholds.ObservedTercileThreshold().compute(
      obs_reference, hindcast_reference, year_target
  )
  member_lower, member_upper = member_threshold.compute(
      obs_reference, hindcast_reference, year_target
  )

  observed_categories = thresholds.categorize(
      obs_reference, obs_lower.sel(selection), obs_upper.sel(selection)
  )
  yearly_probabilities = thresholds.category_probabilities(
      hindcast_reference,
      member_lower.sel(selection),
      member_upper.sel(selection),
  ).transpose(schema.YEAR, schema.CATEGORY)

  target = {schema.YEAR: year_target}
  lower = member_lower.sel(target, drop=True)
  upper = member_upper.sel(target, drop=True)
  probabilities = thresholds.category_probabilities(
      target_values, lower, upper
  )

  scores = metrics.ROCSkillScore(conf_level).compute(
      yearly_probabilities, observed_categories
  )
  result = TercileVerification(
      year_target=year_target,
      probabilities=probabilities.values.astype(float),
      scores=scores['rocss'].values,
      significant=scores['significant'].values,
      p_values=scores['p_value'].values,
      thresholds=(float(lower), float(upper)),
      yearly_probabilities=yearly_probabilities,
      observed_categories=observed_categories,
      conf_level=conf_level,
      score_threshold=score_threshold,
  )
  logging.info(f'Tercile verification for {year_target}: {result.to_dataset()}')
  return result


def verify_terciles_with_config(
    hindcast: xr.DataArray,
    obs: xr.DataArray,
    forecast: t.Optional[xr.DataArray] = None,
    verification_config: t.Optional[config.Verification] = None,
) -> TercileVerification:
  """Runs `verify_terciles` with parameters from a config object."""
  if verification_config is None:
    verification_config = config.Verification()
  kwargs = {
      field.name: getattr(verification_config, field.name)
      for field in dataclasses.fields(verification_config)
  }
  return verify_terciles(hindcast, obs, forecast, **kwargs)


def write_results(result: TercileVerification, path: str) -> None:
  """Writes `result.to_dataset()` as NetCDF to a local or remote path."""
  with fsspec.open(path, 'wb', auto_mkdir=True) as f:
    f.write(result.to_dataset().to_netcdf())
  logging.info(f'Saved tercile verification to {path}')
