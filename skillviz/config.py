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
"""Configuration classes."""

import dataclasses
import typing as t

from skillviz.aggregations import Aggregation
from skillviz.regions import Region


@dataclasses.dataclass
class Verification:
  """Tercile verification configuration class.

  Attributes:
    year_target: Season-year to categorize. Defaults to the forecast's year or
      the last hindcast year.
    detrend: Whether to remove linear trends over the hindcast period.
    conf_level: Confidence level of the ROC skill score significance test.
    score_threshold: Scores at or above this value are highlighted in plots.
    min_reference_years: Fewest reference years needed to form terciles.
    threshold_source: 'observations' or 'hindcast' climatology for
      categorizing ensemble members.
    aggregation: Spatial aggregation of gridded inputs.
    region: Region selected before spatial aggregation.
  """

  year_target: t.Optional[int] = None
  detrend: bool = False
  conf_level: float = 0.95
  score_threshold: t.Optional[float] = None
  min_reference_years: int = 5
  threshold_source: str = 'observations'
  aggregation: t.Optional[Aggregation] = None
  region: t.Optional[Region] = None


@dataclasses.dataclass
class Viz:
  """Visualization configuration class.

  Attributes:
    figsize: Figure size in inches.
    colors: Explicit colors, one per plotted series or tercile bar.
    seed: Seed of the color shuffling used when `colors` runs out.
    linewidth: Width of series lines.
    linestyle: Matplotlib line style of series lines.
    show_na: Shade periods without data in temporal plots.
    title: Figure title.
    ylabel: Label of the value axis.
    save_kwargs: Keyword arguments for `Figure.savefig`.
  """

  figsize: t.Optional[t.Tuple[float, float]] = None
  colors: t.Optional[t.Sequence[str]] = None
  seed: int = 0
  linewidth: float = 1.0
  linestyle: str = '-'
  show_na: bool = False
  title: t.Optional[str] = None
  ylabel: t.Optional[str] = None
  save_kwargs: t.Dict[str, t.Any] = dataclasses.field(default_factory=dict)
