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
"""ROC-based skill scores for tercile probability forecasts.

The area under the ROC curve (AUC) measures how well forecast probabilities
discriminate years in which a category was observed from years in which it
was not. The ROC skill score rescales it to [-1, 1]:

  ROCSS = 2 AUC - 1

so that 0 is no better than chance and 1 is perfect discrimination. The AUC
equals the Mann-Whitney U statistic of event versus non-event probabilities
divided by the number of pairs, which gives a nonparametric significance test.
"""
import dataclasses
import logging

import numpy as np
from scipy import stats
from skillviz import schema
from skillviz import thresholds
from sklearn import metrics as sk_metrics
import xarray as xr


def _validate_conf_level(conf_level: float) -> None:
  if not 0 < conf_level < 1:
    raise ValueError(f"{conf_level=} must be in the open interval (0, 1)")


def _valid_pairs(
    probabilities: np.ndarray, events: np.ndarray
) -> tuple[np.ndarray, np.ndarray]:
  """Drops pairs where either the probability or the event is missing."""
  probabilities = np.asarray(probabilities, dtype=float)
  events = np.asarray(events, dtype=float)
  if probabilities.shape != events.shape:
    raise ValueError(
        f"shape mismatch: {probabilities.shape=} vs {events.shape=}"
    )
  keep = ~(np.isnan(probabilities) | np.isnan(events))
  return probabilities[keep], events[keep].astype(bool)


def roc_area(probabilities: np.ndarray, events: np.ndarray) -> float:
  """Area under the ROC curve of probabilities for binary events.

  Ties count one half, as in the Mann-Whitney statistic.

  Args:
    probabilities: Forecast probability of the event, one per case.
    events: 1 where the event was observed, 0 otherwise. NaN entries, in
      either array, are skipped.

  Returns:
    AUC in [0, 1], or NaN if events are all 0 or all 1.
  """
  probabilities, events = _valid_pairs(probabilities, events)
  if events.all() or not events.any():
    return np.nan
  return float(sk_metrics.roc_auc_score(events, probabilities))


def roc_significance(
    probabilities: np.ndarray,
    events: np.ndarray,
    conf_level: float = 0.95,
) -> tuple[float, bool]:
  """One-sided Mann-Whitney test that the AUC exceeds 0.5.

  Args:
    probabilities: Forecast probability of the event, one per case.
    events: 1 where the event was observed, 0 otherwise.
    conf_level: Confidence level of the test.

  Returns:
    (p_value, significant). Without both events and non-events the p-value is
    NaN; with constant probabilities it is 1. Neither is significant.
  """
  _validate_conf_level(conf_level)
  probabilities, events = _valid_pairs(probabilities, events)
  hits = probabilities[events]
  misses = probabilities[~events]
  if not hits.size or not misses.size:
    return np.nan, False
  if np.all(probabilities == probabilities[0]):
    return 1.0, False
  result = stats.mannwhitneyu(hits, misses, alternative="greater")
  p_value = float(result.pvalue)
  return p_value, p_value < 1 - conf_level


@dataclasses.dataclass
class ROCSkillScore:
  """ROC skill score of tercile probabilities, per category.

  Attributes:
    conf_level: Confidence level of the significance test.
  """

  conf_level: float = 0.95

  def compute(
      self, probabilities: xr.DataArray, observed: xr.DataArray
  ) -> xr.Dataset:
    """Scores probabilities against observed categories.

    Args:
      probabilities: Forecast probabilities with 'year' and 'category'
        dimensions.
      observed: Observed category codes (0, 1, 2; -1 for missing) with a
        'year' dimension.

    Returns:
      Dataset on the 'category' dimension with variables rocss, auc, p_value
      and significant.
    """
    _validate_conf_level(self.conf_level)
    observed = observed.sel({schema.YEAR: probabilities[schema.YEAR]})
    known = observed != thresholds.MISSING_CATEGORY
    aucs, p_values, significant = [], [], []
    for code, category in enumerate(schema.CATEGORIES):
      events = xr.where(known, (observed == code).astype(float), np.nan)
      forecast = probabilities.sel({schema.CATEGORY: category})
      auc = roc_area(forecast.values, events.values)
      if np.isnan(auc):
        logging.warning(
            "Category %r was observed in all or none of the %d scored years;"
            " its ROC skill score is undefined.",
            category,
            int(known.sum()),
        )
      p_value, is_significant = roc_significance(
          forecast.values, events.values, self.conf_level
      )
      aucs.append(auc)
      p_values.append(p_value)
      significant.append(is_significant)
    auc = xr.DataArray(
        np.array(aucs),
        dims=[schema.CATEGORY],
        coords={schema.CATEGORY: list(schema.CATEGORIES)},
    )
    return xr.Dataset({
        "rocss": 2 * auc - 1,
        "auc": auc,
        "p_value": auc.copy(data=np.array(p_values)),
        "significant": auc.copy(data=np.array(significant, dtype=bool)),
    })
