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
r"""Plot tercile probabilities and ROC skill scores of a seasonal forecast.

Example Usage:
  ```
  python scripts/plot_tercile_skill.py \
    --hindcast_path=gs://$BUCKET/cfsv2/hindcast_djf_1983-2010.zarr \
    --obs_path=gs://$BUCKET/ncep/reanalysis_djf_1983-2011.zarr \
    --variable=tas \
    --months=12,1,2 \
    --region=iberia \
    --year_target=2011 \
    --score_threshold=0.5 \
    --output_path=gs://$BUCKET/figures/terciles_djf_2011.png \
    --results_path=gs://$BUCKET/results/terciles_djf_2011.nc
  ```
"""
import ast
import typing as t

from absl import app
from absl import flags
from skillviz import aggregations
from skillviz import config
from skillviz import data_readers
from skillviz import verification
from skillviz import visualization
from skillviz.regions import SliceRegion

_AGGREGATIONS = {
    'mean': aggregations.UnweightedAverage,
    'area_weighted': aggregations.LatLonAverage,
    'min': lambda: aggregations.Reduction(reduction='min'),
    'max': lambda: aggregations.Reduction(reduction='max'),
    'median': lambda: aggregations.Reduction(reduction='median'),
}

# Longitudes in [0, 360); read_variable converts inputs to this convention.
PREDEFINED_REGIONS = {
    'global': SliceRegion(),
    'europe': SliceRegion(
        lat_slice=slice(35, 75),
        lon_slice=[slice(360 - 12.5, None), slice(0, 42.5)],
    ),
    'iberia': SliceRegion(
        lat_slice=slice(36, 44),
        lon_slice=[slice(360 - 10, None), slice(0, 4)],
    ),
    'north-atlantic': SliceRegion(
        lat_slice=slice(25, 65), lon_slice=slice(360 - 70, 360 - 10)
    ),
    'tropics': SliceRegion(lat_slice=slice(-20, 20)),
}

HINDCAST_PATH = flags.DEFINE_string(
    'hindcast_path',
    None,
    help='Path to hindcast ensemble (Zarr ending in .zarr, or NetCDF)',
)
OBS_PATH = flags.DEFINE_string(
    'obs_path',
    None,
    help='Path to observations',
)
FORECAST_PATH = flags.DEFINE_string(
    'forecast_path',
    None,
    help='Optional path to a forecast ensemble for the target year',
)
VARIABLE = flags.DEFINE_string(
    'variable',
    'tas',
    help='Variable to verify',
)
OBS_VARIABLE = flags.DEFINE_string(
    'obs_variable',
    None,
    help='Name of the variable in the observations, if different',
)
RENAME_VARIABLES = flags.DEFINE_string(
    'rename_variables',
    None,
    help=(
        'Dictionary of variable to rename to standard names. E.g. {"t2m":'
        ' "tas"}'
    ),
)
MONTHS = flags.DEFINE_list(
    'months',
    None,
    help='Calendar months of the season, e.g. 12,1,2. Defaults to all months.',
)
YEAR_TARGET = flags.DEFINE_integer(
    'year_target',
    None,
    help=(
        'Season-year to categorize. Defaults to the forecast year, or the'
        ' last hindcast year'
    ),
)
DETREND = flags.DEFINE_bool(
    'detrend',
    False,
    help='Remove linear trends over the hindcast period',
)
CONF_LEVEL = flags.DEFINE_float(
    'conf_level',
    0.95,
    help='Confidence level of the significance test',
)
SCORE_THRESHOLD = flags.DEFINE_float(
    'score_threshold',
    None,
    help='Highlight ROC skill scores at or above this value',
)
MIN_REFERENCE_YEARS = flags.DEFINE_integer(
    'min_reference_years',
    verification.DEFAULT_MIN_REFERENCE_YEARS,
    help='Fewest reference years needed to form terciles',
)
THRESHOLD_SOURCE = flags.DEFINE_enum(
    'threshold_source',
    'observations',
    ['observations', 'hindcast'],
    help='Climatology defining the terciles of ensemble members',
)
AGGREGATION = flags.DEFINE_enum(
    'aggregation',
    'mean',
    list(_AGGREGATIONS),
    help='Spatial aggregation of gridded data',
)
REGION = flags.DEFINE_enum(
    'region',
    None,
    list(PREDEFINED_REGIONS),
    help='Region selected before spatial aggregation',
)
TITLE = flags.DEFINE_string(
    'title',
    None,
    help='Figure title. Defaults to the target year.',
)
SUBTITLE = flags.DEFINE_string(
    'subtitle',
    None,
    help='Optional second title line',
)
OUTPUT_PATH = flags.DEFINE_string(
    'output_path',
    None,
    help='Path to save the tercile bar plot',
)
RESULTS_PATH = flags.DEFINE_string(
    'results_path',
    None,
    help='Optional path to save the verification results as NetCDF',
)
TIMESERIES_PATH = flags.DEFINE_string(
    'timeseries_path',
    None,
    help='Optional path to save a plot of the input series',
)
DPI = flags.DEFINE_integer(
    'dpi',
    150,
    help='Resolution of saved figures',
)


def main(_: t.Sequence[str]) -> None:
  rename_variables = (
      ast.literal_eval(RENAME_VARIABLES.value)
      if RENAME_VARIABLES.value
      else None
  )
  months = [int(m) for m in MONTHS.value] if MONTHS.value else None

  def read(path, variable):
    return data_readers.read_variable(
        path, variable, rename_variables=rename_variables, months=months
    )

  hindcast = read(HINDCAST_PATH.value, VARIABLE.value)
  obs = read(OBS_PATH.value, OBS_VARIABLE.value or VARIABLE.value)
  forecast = (
      read(FORECAST_PATH.value, VARIABLE.value) if FORECAST_PATH.value else None
  )

  region = PREDEFINED_REGIONS[REGION.value] if REGION.value else None
  verification_config = config.Verification(
      year_target=YEAR_TARGET.value,
      detrend=DETREND.value,
      conf_level=CONF_LEVEL.value,
      score_threshold=SCORE_THRESHOLD.value,
      min_reference_years=MIN_REFERENCE_YEARS.value,
      threshold_source=THRESHOLD_SOURCE.value,
      aggregation=_AGGREGATIONS[AGGREGATION.value](),
      region=region,
  )
  viz_config = config.Viz(
      title=TITLE.value,
      ylabel=VARIABLE.value,
      save_kwargs={'dpi': DPI.value, 'bbox_inches': 'tight'},
  )

  visualization.set_skillviz_style()
  result, _ = visualization.plot_tercile_verification(
      hindcast,
      obs,
      forecast,
      verification_config=verification_config,
      viz_config=viz_config,
      subtitle=SUBTITLE.value,
      save_path=OUTPUT_PATH.value,
  )
  if RESULTS_PATH.value:
    verification.write_results(result, RESULTS_PATH.value)

  if TIMESERIES_PATH.value:
    series = [('hindcast', hindcast), ('observations', obs)]
    if forecast is not None:
      series.append(('forecast', forecast))
    visualization.visualize_temporal(
        series,
        viz_config,
        aggregation=verification_config.aggregation,
        region=region,
        save_path=TIMESERIES_PATH.value,
    )


if __name__ == '__main__':
  flags.mark_flags_as_required(['hindcast_path', 'obs_path', 'output_path'])
  app.run(main)
