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
import os

from absl.testing import absltest
from absl.testing import parameterized
import numpy as np
from skillviz import aggregations
from skillviz import config
from skillviz import errors
from skillviz import regions
from skillviz import schema
from skillviz import test_utils
from skillviz import utils
from skillviz import verification
import xarray as xr


def _identical_members(values, ensemble_size=5, start_year=1981):
  values = np.asarray(values, dtype=float)
  return test_utils.yearly_ensemble(
      np.tile(values, (ensemble_size, 1)), start_year=start_year
  )


class VerifyTercilesTest(parameterized.TestCase):

  def test_ten_year_example(self):
    values = np.arange(1.0, 11.0)
    result = verification.verify_terciles(
        _identical_members(values), test_utils.yearly_series(values)
    )
    self.assertEqual(result.year_target, 1990)
    self.assertEqual(result.reference_years, list(range(1981, 1990)))
    np.testing.assert_allclose(result.thresholds, (11 / 3, 19 / 3))
    np.testing.assert_allclose(result.probabilities, [0.0, 0.0, 1.0])
    # Members equal the observations, so every year is categorized correctly.
    np.testing.assert_allclose(result.scores, 1.0)
    self.assertEqual(result.categories, ('below', 'between', 'above'))

  def test_explicit_year_target(self):
    values = np.arange(1.0, 11.0)
    result = verification.verify_terciles(
        _identical_members(values),
        test_utils.yearly_series(values),
        year_target=1985,
    )
    self.assertNotIn(1985, result.reference_years)
    self.assertLen(result.reference_years, 9)
    np.testing.assert_allclose(result.thresholds, (11 / 3, 22 / 3))
    np.testing.assert_allclose(result.probabilities, [0.0, 1.0, 0.0])

  def test_perfect_forecast_is_significant(self):
    values = np.random.RandomState(0).normal(size=25)
    result = verification.verify_terciles(
        _identical_members(values), test_utils.yearly_series(values)
    )
    np.testing.assert_allclose(result.scores, 1.0)
    self.assertTrue(result.significant.all())
    np.testing.assert_array_less(result.p_values, 0.05)

  def test_no_skill_scores_near_zero(self):
    rs = np.random.RandomState(802701)
    n_years = 550
    obs = test_utils.yearly_series(rs.uniform(size=n_years), start_year=1700)
    hindcast = test_utils.yearly_ensemble(
        rs.uniform(size=(10, n_years)), start_year=1700
    )
    result = verification.verify_terciles(hindcast, obs)
    np.testing.assert_array_less(np.abs(result.scores), 0.25)
    test_utils.assert_probabilities(result.probabilities)

  def test_probabilities_sum_to_one(self):
    rs = np.random.RandomState(3)
    hindcast = test_utils.yearly_ensemble(rs.normal(size=(7, 15)))
    hindcast = test_utils.insert_nan(hindcast, frac_nan=0.1)
    obs = test_utils.yearly_series(rs.normal(size=15))
    result = verification.verify_terciles(hindcast, obs)
    test_utils.assert_probabilities(result.probabilities)
    test_utils.assert_probabilities(result.yearly_probabilities.values)
    self.assertTrue(np.all(np.abs(result.scores) <= 1))

  def test_forecast_outside_hindcast_period(self):
    values = np.arange(1.0, 11.0)
    forecast = test_utils.yearly_ensemble(
        np.full((5, 1), 100.0), start_year=1991
    )
    result = verification.verify_terciles(
        _identical_members(values),
        test_utils.yearly_series(values),
        forecast,
    )
    self.assertEqual(result.year_target, 1991)
    self.assertEqual(result.reference_years, list(range(1981, 1991)))
    np.testing.assert_allclose(result.thresholds, (4.0, 7.0))
    np.testing.assert_allclose(result.probabilities, [0.0, 0.0, 1.0])

  def test_forecast_with_several_years_needs_target(self):
    values = np.arange(1.0, 11.0)
    forecast = test_utils.yearly_ensemble(np.ones((5, 2)), start_year=1991)
    with self.assertRaisesRegex(errors.AlignmentError, 'year_target'):
      verification.verify_terciles(
          _identical_members(values), test_utils.yearly_series(values), forecast
      )

  def test_missing_observation_is_excluded(self):
    values = np.arange(1.0, 11.0)
    obs_values = values.copy()
    obs_values[3] = np.nan
    with self.assertLogs(level='WARNING') as logs:
      result = verification.verify_terciles(
          _identical_members(values), test_utils.yearly_series(obs_values)
      )
    self.assertNotIn(1984, result.reference_years)
    self.assertLen(result.reference_years, 8)
    self.assertTrue(any('missing observation' in line for line in logs.output))

  def test_observations_outside_hindcast_are_ignored(self):
    values = np.arange(1.0, 11.0)
    obs = test_utils.yearly_series(np.arange(1.0, 21.0), start_year=1971)
    with self.assertLogs(level='INFO') as logs:
      result = verification.verify_terciles(_identical_members(values), obs)
    self.assertEqual(result.reference_years, list(range(1981, 1990)))
    self.assertTrue(any('outside the hindcast' in line for line in logs.output))

  def test_observations_with_single_member(self):
    values = np.arange(1.0, 11.0)
    obs = test_utils.yearly_ensemble(values[np.newaxis])
    result = verification.verify_terciles(_identical_members(values), obs)
    np.testing.assert_allclose(result.probabilities, [0.0, 0.0, 1.0])

  def test_inputs_on_year_dimension(self):
    values = np.arange(1.0, 11.0)
    hindcast = utils.aggregate_years(_identical_members(values))
    obs = utils.aggregate_years(test_utils.yearly_series(values))
    self.assertIn('year', hindcast.dims)
    result = verification.verify_terciles(hindcast, obs)
    np.testing.assert_allclose(result.probabilities, [0.0, 0.0, 1.0])

  def test_threshold_source(self):
    values = np.arange(1.0, 11.0)
    obs = test_utils.yearly_series(values)
    biased = _identical_members(values + 100, ensemble_size=1)

    observed_terciles = verification.verify_terciles(biased, obs)
    # Every member is above the observed terciles in every year.
    np.testing.assert_allclose(observed_terciles.probabilities, [0, 0, 1])
    np.testing.assert_allclose(observed_terciles.scores, 0.0)
    self.assertFalse(observed_terciles.significant.any())

    model_terciles = verification.verify_terciles(
        biased, obs, threshold_source='hindcast'
    )
    np.testing.assert_allclose(model_terciles.probabilities, [0, 0, 1])
    np.testing.assert_allclose(model_terciles.scores, 1.0)

  def test_gridded_inputs_are_aggregated_with_warning(self):
    kwargs = dict(
        start_year=1983,
        end_year=1994,
        time_resolution='monthly',
        spatial_resolution_in_degrees=4.0,
    )
    hindcast = utils.random_like(
        schema.mock_hindcast(ensemble_size=3, **kwargs), seed=0
    )
    obs = utils.random_like(schema.mock_observations(**kwargs), seed=1)
    with self.assertLogs(level='WARNING') as logs:
      result = verification.verify_terciles(hindcast, obs)
    self.assertTrue(any('spatial dimensions' in line for line in logs.output))
    self.assertEqual(result.year_target, 1994)
    test_utils.assert_probabilities(result.probabilities)

  def test_region_and_aggregation(self):
    kwargs = dict(
        start_year=1983,
        end_year=1994,
        time_resolution='monthly',
        spatial_resolution_in_degrees=4.0,
    )
    hindcast = utils.random_like(
        schema.mock_hindcast(ensemble_size=3, **kwargs), seed=0
    )
    obs = utils.random_like(schema.mock_observations(**kwargs), seed=1)
    region = regions.SliceRegion(lat_slice=slice(40, 44))
    aggregation = aggregations.Reduction(reduction='max')
    result = verification.verify_terciles(
        hindcast, obs, region=region, aggregation=aggregation
    )
    expected = verification.verify_terciles(
        hindcast.sel(latitude=slice(40, 44)).max(['latitude', 'longitude']),
        obs.sel(latitude=slice(40, 44)).max(['latitude', 'longitude']),
    )
    np.testing.assert_allclose(result.probabilities, expected.probabilities)
    np.testing.assert_allclose(result.scores, expected.scores)

  def test_region_with_point_observations(self):
    kwargs = dict(start_year=1983, end_year=1994, time_resolution='monthly')
    hindcast = utils.random_like(
        schema.mock_hindcast(
            ensemble_size=3, spatial_resolution_in_degrees=4.0, **kwargs
        ),
        seed=0,
    )
    obs = utils.random_like(schema.mock_observations(**kwargs), seed=1)
    region = regions.SliceRegion(lat_slice=slice(40, 44))
    result = verification.verify_terciles(hindcast, obs, region=region)
    expected = verification.verify_terciles(
        hindcast.sel(latitude=slice(40, 44)).mean(['latitude', 'longitude']),
        obs,
    )
    np.testing.assert_allclose(result.probabilities, expected.probabilities)
    np.testing.assert_allclose(result.scores, expected.scores)

  def test_season_crossing_year_end(self):
    hindcast = utils.random_like(
        schema.mock_hindcast(ensemble_size=4, start_year=1983, end_year=1992),
        seed=2,
    )
    obs = utils.random_like(
        schema.mock_observations(start_year=1983, end_year=1992), seed=3
    )
    result = verification.verify_terciles(hindcast, obs)
    # December 1991 belongs to the 1992 winter.
    self.assertEqual(result.year_target, 1992)
    self.assertEqual(result.reference_years, list(range(1983, 1992)))


class DetrendTest(absltest.TestCase):

  def setUp(self):
    super().setUp()
    # The noise has zero mean and no trend, so the fitted slope is exactly 2.
    noise = np.array([3, -3, -3, 3, 0, 0, 3, -3, -3, 3], dtype=float)
    self.values = 2 * np.arange(10) + noise
    self.hindcast = _identical_members(self.values, ensemble_size=3)
    self.obs = test_utils.yearly_series(self.values)
    self.forecast = test_utils.yearly_ensemble(
        np.full((3, 1), 20.0), start_year=1991
    )

  def test_forecast_on_trend(self):
    raw = verification.verify_terciles(self.hindcast, self.obs, self.forecast)
    np.testing.assert_allclose(raw.thresholds, (8.0, 11.0))
    np.testing.assert_allclose(raw.probabilities, [0.0, 0.0, 1.0])

    detrended = verification.verify_terciles(
        self.hindcast, self.obs, self.forecast, detrend=True
    )
    np.testing.assert_allclose(detrended.thresholds, (6.0, 12.0))
    np.testing.assert_allclose(detrended.probabilities, [0.0, 1.0, 0.0])

  def test_matches_detrending_beforehand(self):
    rs = np.random.RandomState(11)
    trend = np.linspace(0, 3, 20)
    hindcast = test_utils.yearly_ensemble(trend + rs.normal(size=(6, 20)))
    obs = test_utils.yearly_series(trend + rs.normal(size=20))
    result = verification.verify_terciles(hindcast, obs, detrend=True)
    expected = verification.verify_terciles(
        utils.detrend(utils.aggregate_years(hindcast), exclude=[2000]),
        utils.detrend(utils.aggregate_years(obs), exclude=[2000]),
    )
    self.assertEqual(result.year_target, 2000)
    np.testing.assert_allclose(result.probabilities, expected.probabilities)
    np.testing.assert_allclose(result.scores, expected.scores)
    np.testing.assert_allclose(result.thresholds, expected.thresholds)

  def test_target_observation_does_not_inform_trend(self):
    rs = np.random.RandomState(12)
    trend = np.linspace(0, 3, 20)
    hindcast = test_utils.yearly_ensemble(trend + rs.normal(size=(6, 20)))
    values = trend + rs.normal(size=20)
    obs = test_utils.yearly_series(values)
    values[-1] += 1000.0
    outlier_obs = test_utils.yearly_series(values)

    result = verification.verify_terciles(hindcast, obs, detrend=True)
    outlier = verification.verify_terciles(hindcast, outlier_obs, detrend=True)
    self.assertEqual(outlier.year_target, 2000)
    np.testing.assert_allclose(outlier.thresholds, result.thresholds)
    np.testing.assert_allclose(outlier.probabilities, result.probabilities)
    np.testing.assert_allclose(outlier.scores, result.scores)
    xr.testing.assert_allclose(
        outlier.yearly_probabilities, result.yearly_probabilities
    )


class ErrorsTest(parameterized.TestCase):

  def setUp(self):
    super().setUp()
    rs = np.random.RandomState(0)
    self.hindcast = test_utils.yearly_ensemble(rs.normal(size=(5, 10)))
    self.obs = test_utils.yearly_series(rs.normal(size=10))

  def test_error_families(self):
    for error in (
        errors.AlignmentError,
        errors.DimensionError,
        errors.InsufficientDataError,
        errors.ZeroVarianceError,
    ):
      self.assertTrue(issubclass(error, ValueError))
    self.assertFalse(
        issubclass(errors.ZeroVarianceError, errors.InputValidationError)
    )

  def test_too_few_reference_years(self):
    with self.assertRaises(errors.InsufficientDataError):
      verification.verify_terciles(
          self.hindcast.isel(time=slice(5)), self.obs.isel(time=slice(5))
      )

  def test_min_reference_years(self):
    result = verification.verify_terciles(
        self.hindcast.isel(time=slice(5)),
        self.obs.isel(time=slice(5)),
        min_reference_years=3,
    )
    self.assertLen(result.reference_years, 4)

  def test_hindcast_without_members(self):
    with self.assertRaisesRegex(errors.DimensionError, 'member'):
      verification.verify_terciles(self.obs, self.obs)

  def test_empty_ensemble(self):
    with self.assertRaisesRegex(errors.DimensionError, 'zero'):
      verification.verify_terciles(
          self.hindcast.isel(member=slice(0, 0)), self.obs
      )

  def test_observations_with_members(self):
    with self.assertRaises(errors.DimensionError):
      verification.verify_terciles(self.hindcast, self.hindcast)

  def test_no_overlapping_years(self):
    obs = test_utils.yearly_series(np.arange(10.0), start_year=2001)
    with self.assertRaisesRegex(errors.AlignmentError, 'overlap'):
      verification.verify_terciles(self.hindcast, obs)

  def test_different_seasons(self):
    hindcast = utils.random_like(
        schema.mock_hindcast(ensemble_size=2, start_year=1983, end_year=1992)
    )
    obs = utils.random_like(
        schema.mock_observations(
            start_year=1983, end_year=1992, months=(6, 7, 8)
        )
    )
    with self.assertRaisesRegex(errors.AlignmentError, 'months'):
      verification.verify_terciles(hindcast, obs)

  def test_target_year_not_available(self):
    with self.assertRaises(errors.AlignmentError):
      verification.verify_terciles(self.hindcast, self.obs, year_target=2050)

  def test_constant_observations(self):
    with self.assertRaises(errors.ZeroVarianceError):
      verification.verify_terciles(self.hindcast, xr.ones_like(self.obs))

  def test_non_numeric_data(self):
    with self.assertRaises(errors.InputValidationError):
      verification.verify_terciles(self.hindcast > 0, self.obs)

  def test_not_a_data_array(self):
    with self.assertRaises(errors.InputValidationError):
      verification.verify_terciles(self.hindcast.values, self.obs)

  def test_time_not_datetime(self):
    obs = self.obs.assign_coords(time=np.arange(10))
    with self.assertRaises(errors.AlignmentError):
      verification.verify_terciles(self.hindcast, obs)

  @parameterized.named_parameters(
      dict(testcase_name='conf_level_too_high', conf_level=1.5),
      dict(testcase_name='conf_level_zero', conf_level=0.0),
      dict(testcase_name='min_reference_years', min_reference_years=2),
      dict(testcase_name='score_threshold', score_threshold=1.2),
  )
  def test_invalid_parameters(self, **kwargs):
    with self.assertRaises(errors.InputValidationError):
      verification.verify_terciles(self.hindcast, self.obs, **kwargs)


class ResultTest(absltest.TestCase):

  def setUp(self):
    super().setUp()
    values = np.arange(1.0, 11.0)
    self.hindcast = _identical_members(values)
    self.obs = test_utils.yearly_series(values)

  def test_with_config(self):
    result = verification.verify_terciles_with_config(
        self.hindcast,
        self.obs,
        verification_config=config.Verification(
            year_target=1985, score_threshold=0.5
        ),
    )
    self.assertEqual(result.year_target, 1985)
    self.assertTrue(result.highlighted.all())

  def test_highlighted_without_threshold(self):
    result = verification.verify_terciles(self.hindcast, self.obs)
    self.assertFalse(result.highlighted.any())

  def test_to_dataset(self):
    ds = verification.verify_terciles(self.hindcast, self.obs).to_dataset()
    self.assertEqual(
        set(ds.data_vars), {'probability', 'rocss', 'significant', 'p_value'}
    )
    self.assertEqual(ds.attrs['year_target'], 1990)
    np.testing.assert_allclose(
        ds.probability.sel(category='above'), 1.0
    )

  def test_write_results(self):
    result = verification.verify_terciles(self.hindcast, self.obs)
    path = os.path.join(self.create_tempdir().full_path, 'out', 'result.nc')
    verification.write_results(result, path)
    actual = xr.open_dataset(path)
    np.testing.assert_allclose(actual.rocss.values, result.scores)
    np.testing.assert_array_equal(
        actual.category.values, ['below', 'between', 'above']
    )
    self.assertEqual(actual.attrs['year_target'], 1990)


if __name__ == '__main__':
  absltest.main()
