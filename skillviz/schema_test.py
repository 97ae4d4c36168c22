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
from absl.testing import absltest
import numpy as np
import pandas as pd
from skillviz import schema


class SchemaTest(absltest.TestCase):

  def test_djf_season_dates(self):
    dates = schema.season_dates(1983, 1984)
    self.assertEqual(dates[0], pd.Timestamp('1982-12-01'))
    self.assertEqual(dates[-1], pd.Timestamp('1984-02-29'))
    self.assertLen(dates, 90 + 91)
    self.assertTrue(dates.is_monotonic_increasing)

  def test_monthly_season_dates(self):
    dates = schema.season_dates(
        2000, 2001, months=(6, 7, 8), time_resolution='monthly'
    )
    expected = pd.to_datetime([
        '2000-06-01', '2000-07-01', '2000-08-01',
        '2001-06-01', '2001-07-01', '2001-08-01',
    ])
    pd.testing.assert_index_equal(dates, expected)

  def test_mock_hindcast(self):
    hindcast = schema.mock_hindcast(
        ensemble_size=4,
        start_year=1990,
        end_year=1991,
        time_resolution='monthly',
        spatial_resolution_in_degrees=2.0,
    )
    self.assertEqual(
        hindcast.dims, ('member', 'time', 'latitude', 'longitude')
    )
    self.assertEqual(hindcast.sizes['member'], 4)
    self.assertEqual(hindcast.sizes['time'], 6)
    self.assertEqual(hindcast.sizes['latitude'], 5)
    self.assertEqual(hindcast.sizes['longitude'], 8)
    np.testing.assert_array_equal(hindcast.values, 0)

  def test_mock_observations_without_grid(self):
    obs = schema.mock_observations(start_year=2000, end_year=2000)
    self.assertEqual(obs.dims, ('time',))


if __name__ == '__main__':
  absltest.main()
