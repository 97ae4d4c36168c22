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
"""Plots of tercile verification results and temporal series."""

from collections import abc
import dataclasses
import functools
import typing as t

import fsspec
import matplotlib
from matplotlib import colors as mcolors
from matplotlib import dates as mdates
from matplotlib.lines import Line2D
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from skillviz import aggregations
from skillviz import config
from skillviz import errors
from skillviz import schema
from skillviz import verification
from skillviz.regions import Region
import xarray as xr

BASE_COLORS = ('black', 'red', 'blue', 'green')
# Named colors too pale to tell apart from the background.
PALE_COLORS = frozenset({
    'aliceblue', 'azure', 'floralwhite', 'ghostwhite', 'honeydew', 'ivory',
    'lavenderblush', 'linen', 'mintcream', 'oldlace', 'seashell', 'snow',
    'white', 'whitesmoke',
})  # fmt: skip
TERCILE_COLORS = ('tab:blue', '0.75', 'tab:red')
TERCILE_LABELS = ('Below', 'Between', 'Above')
HIGHLIGHT_COLOR = 'tab:green'
SPREAD_ALPHA = 0.15
MISSING_COLOR = '0.9'
GRID_COLOR = '0.65'


def set_skillviz_style() -> None:
  """Changes MPL defaults to skillviz style."""
  plt.rcParams['axes.grid'] = False
  plt.rcParams['figure.facecolor'] = 'None'
  plt.rcParams['axes.facecolor'] = 'white'
  plt.rcParams['axes.spines.right'] = False
  plt.rcParams['axes.spines.top'] = False


def _save(fig: matplotlib.figure.Figure, save_path: str, **kwargs) -> None:
  with fsspec.open(save_path, 'wb', auto_mkdir=True) as f:
    fig.savefig(f, **kwargs)
  plt.close(fig)


def assign_colors(
    labels: abc.Sequence[str],
    colors: t.Optional[abc.Sequence[str]] = None,
    seed: int = 0,
) -> dict[str, str]:
  """Maps every label to a color.

  User colors are used in order. Otherwise the first series are black, red,
  blue and green, followed by the remaining named colors in an order shuffled
  with `seed`, so the same call always gives the same colors.

  Args:
    labels: Series labels, in plotting order.
    colors: Optional explicit colors.
    seed: Seed of the shuffle of the default palette.

  Returns:
    Dict from label to color.
  """
  if colors is not None:
    colors = list(colors)
    if len(colors) < len(labels):
      raise ValueError(
          f'Please add {len(labels) - len(colors)} more color(s) to `colors`,'
          ' or keep the default option.'
      )
  else:
    extra = sorted(
        name
        for name in mcolors.CSS4_COLORS
        if name not in BASE_COLORS and name not in PALE_COLORS
    )
    order = np.random.default_rng(seed).permutation(len(extra))
    colors = list(BASE_COLORS) + [extra[i] for i in order]
    if len(colors) < len(labels):
      raise ValueError(f'Cannot assign colors to {len(labels)} series')
  return dict(zip(labels, colors))


################################################################################
# Tercile bar plot.
################################################################################


def _score_color(score: float, highlighted: bool) -> str:
  if np.isnan(score):
    return 'gray'
  if score < 0:
    return 'red'
  if highlighted:
    return HIGHLIGHT_COLOR
  return 'black'


def _format_score(score: float, significant: bool) -> str:
  if np.isnan(score):
    return 'n/a'
  return f'{score:.2f}' + ('*' if significant else '')


def tercile_barplot(
    result: verification.TercileVerification,
    ax: t.Optional[matplotlib.axes.Axes] = None,
    title: t.Optional[str] = None,
    subtitle: t.Optional[str] = None,
    colors: abc.Sequence[str] = TERCILE_COLORS,
) -> matplotlib.axes.Axes:
  """Bar plot of tercile probabilities annotated with ROC skill scores.

  A dashed line marks the climatological probability of 1/3. Scores are
  printed above their bars: red when negative, green when at or above the
  result's `score_threshold`, black otherwise. Significant scores are bold and
  starred.

  Args:
    result: Output of `verification.verify_terciles`.
    ax: Axes to draw on. A new figure is created if None.
    title: Plot title. Defaults to the target year.
    subtitle: Optional second title line.
    colors: Bar colors for below, between and above.

  Returns:
    The axes.
  """
  if ax is None:
    _, ax = plt.subplots()
  x = np.arange(len(schema.CATEGORIES))
  ax.bar(x, result.probabilities, color=list(colors), edgecolor='black')
  ax.axhline(1 / 3, color='black', linestyle='--', linewidth=1)

  for i, (probability, score, significant, highlighted) in enumerate(
      zip(
          result.probabilities,
          result.scores,
          result.significant,
          result.highlighted,
      )
  ):
    ax.text(
        x[i],
        probability + 0.02,
        _format_score(score, significant),
        ha='center',
        va='bottom',
        color=_score_color(score, highlighted),
        fontweight='bold' if significant else 'normal',
    )
  ax.text(
      0.99,
      0.99,
      f'ROCSS (* significant at {result.conf_level:.0%})',
      transform=ax.transAxes,
      ha='right',
      va='top',
      fontsize=8,
  )
  ax.set_xticks(x)
  ax.set_xticklabels(TERCILE_LABELS)
  ax.set_ylim(0, 1.15)
  ax.set_ylabel('Probability')
  if title is None:
    title = f'Tercile probabilities {result.year_target}'
  if subtitle:
    title = f'{title}\n{subtitle}'
  ax.set_title(title, fontsize=12)
  return ax


def plot_tercile_verification(
    hindcast: xr.DataArray,
    obs: xr.DataArray,
    forecast: t.Optional[xr.DataArray] = None,
    verification_config: t.Optional[config.Verification] = None,
    viz_config: t.Optional[config.Viz] = None,
    subtitle: t.Optional[str] = None,
    save_path: t.Optional[str] = None,
) -> tuple[verification.TercileVerification, matplotlib.axes.Axes]:
  """Verifies a forecast and draws the tercile bar plot.

  Args:
    hindcast: Hindcast ensemble.
    obs: Observations.
    forecast: Optional forecast ensemble for the target year.
    verification_config: Verification parameters.
    viz_config: Figure parameters.
    subtitle: Optional subtitle.
    save_path: If given, the figure is saved there and closed.

  Returns:
    (result, ax).
  """
  viz_config = viz_config or config.Viz()
  result = verification.verify_terciles_with_config(
      hindcast, obs, forecast, verification_config
  )
  fig, ax = plt.subplots(figsize=viz_config.figsize)
  tercile_barplot(
      result,
      ax=ax,
      title=viz_config.title,
      subtitle=subtitle,
      colors=viz_config.colors or TERCILE_COLORS,
  )
  if save_path is not None:
    _save(fig, save_path, **viz_config.save_kwargs)
  return result, ax


################################################################################
# Temporal plot.
################################################################################


def _typical_step(index: pd.DatetimeIndex) -> pd.Timedelta:
  diffs = pd.Series(index).diff().dropna()
  return diffs[diffs > pd.Timedelta(0)].median()


def _calendar_frequency(index: pd.DatetimeIndex) -> t.Optional[str]:
  """'Y' or 'M' for yearly or monthly data with one value per period."""
  typical = _typical_step(index)
  if typical >= pd.Timedelta(days=365):
    freq = 'Y'
  elif typical >= pd.Timedelta(days=28):
    freq = 'M'
  else:
    return None
  if index.to_period(freq).has_duplicates:
    return None
  return freq


def _infer_step(
    index: pd.DatetimeIndex,
) -> t.Union[pd.DateOffset, pd.Timedelta]:
  """Regular step of a sub-monthly date axis that may contain gaps."""
  if len(index) >= 3:
    freq = pd.infer_freq(index)
    if freq is not None:
      return pd.tseries.frequencies.to_offset(freq)
  diffs = pd.Series(index).diff().dropna()
  return diffs[diffs > pd.Timedelta(0)].min()


def fill_missing_dates(frame: pd.DataFrame) -> pd.DataFrame:
  """Reindexes a date-indexed frame onto a regular axis; new rows are NaN.

  Monthly and yearly data are filled by calendar period, so values stamped
  anywhere within a month (e.g. mid-month) keep their timestamps and only
  months without data get a new row, at the start of the month.
  """
  if len(frame.index) < 2:
    return frame
  freq = _calendar_frequency(frame.index)
  if freq is not None:
    periods = frame.index.to_period(freq)
    full = pd.period_range(periods.min(), periods.max(), freq=freq)
    missing = full.difference(periods).to_timestamp()
    filled = frame.reindex(frame.index.union(missing))
  else:
    step = _infer_step(frame.index)
    full = pd.date_range(frame.index[0], frame.index[-1], freq=step)
    filled = frame.reindex(full.union(frame.index))
  filled.index.name = schema.TIME
  return filled


def prepare_temporal_series(
    da: xr.DataArray,
    aggregation: t.Optional[aggregations.Aggregation] = None,
    region: t.Optional[Region] = None,
    name: str = '',
) -> pd.DataFrame:
  """Ensemble mean and range of a series, on a gap-filled date axis.

  Args:
    da: Data with a 'time' dimension and optional member and spatial
      dimensions.
    aggregation: Spatial aggregation. Defaults to an unweighted mean.
    region: Optional region selected before spatial aggregation.
    name: Label used in log messages.

  Returns:
    DataFrame indexed by date with columns 'value' (ensemble mean), 'minimum'
    and 'maximum'. Single series have equal columns.
  """
  if schema.TIME not in da.dims:
    raise errors.DimensionError(f'{name or "data"} has no time dimension')
  da = aggregations.reduce_to_series(da, aggregation, region, name=name)
  if schema.MEMBER not in da.dims:
    da = da.expand_dims({schema.MEMBER: 1})
  frame = pd.DataFrame(
      {
          'value': da.mean(schema.MEMBER, skipna=True).values,
          'minimum': da.min(schema.MEMBER, skipna=True).values,
          'maximum': da.max(schema.MEMBER, skipna=True).values,
      },
      index=pd.DatetimeIndex(da[schema.TIME].values, name=schema.TIME),
  ).sort_index()
  if frame.index.has_duplicates:
    raise errors.AlignmentError(f'{name or "data"} has duplicate timestamps')
  return fill_missing_dates(frame)


def contiguous_runs(
    frame: pd.DataFrame, missing: bool = False, column: str = 'value'
) -> list[pd.DataFrame]:
  """Splits a frame into its runs of valid (or missing) `column` values."""
  isna = frame[column].isna()
  run_id = (isna != isna.shift()).cumsum()
  return [
      run
      for _, run in frame.groupby(run_id, sort=False)
      if bool(run[column].isna().iloc[0]) == missing
  ]


@dataclasses.dataclass
class Layer:
  """One component of a composite plot."""

  def draw(self, ax: matplotlib.axes.Axes) -> matplotlib.axes.Axes:
    raise NotImplementedError


@dataclasses.dataclass
class SpreadLayer(Layer):
  """Translucent band between the ensemble minimum and maximum."""

  frame: pd.DataFrame
  color: str
  alpha: float = SPREAD_ALPHA

  def draw(self, ax):
    for run in contiguous_runs(self.frame):
      ax.fill_between(
          run.index,
          run['minimum'],
          run['maximum'],
          color=self.color,
          alpha=self.alpha,
          linewidth=0,
      )
    return ax


@dataclasses.dataclass
class MissingLayer(Layer):
  """Gray shading over periods without data."""

  frame: pd.DataFrame
  color: str = MISSING_COLOR

  def draw(self, ax):
    index = self.frame.index
    for run in contiguous_runs(self.frame, missing=True):
      # Spans reach the next valid date so single missing dates stay visible.
      after = index.get_loc(run.index[-1]) + 1
      if after < len(index):
        end = index[after]
      elif len(index) > 1:
        end = index[-1] + (index[-1] - index[-2])
      else:
        end = index[-1]
      ax.axvspan(run.index[0], end, color=self.color, linewidth=0, zorder=0)
    return ax


@dataclasses.dataclass
class LineLayer(Layer):
  """Ensemble mean line; gaps in the data break the line."""

  frame: pd.DataFrame
  color: str
  label: str
  linewidth: float = 1.0
  linestyle: str = '-'

  def draw(self, ax):
    ax.plot(
        self.frame.index,
        self.frame['value'],
        color=self.color,
        label=self.label,
        linewidth=self.linewidth,
        linestyle=self.linestyle,
    )
    return ax


@dataclasses.dataclass
class GridLayer(Layer):
  """Axis limits, ten tick intervals per axis and dashed grid lines."""

  xlim: tuple[pd.Timestamp, pd.Timestamp]
  ylim: tuple[float, float]
  intervals: int = 10

  def draw(self, ax):
    start, stop = (pd.Timestamp(x) for x in self.xlim)
    xticks = pd.to_datetime(
        np.linspace(start.value, stop.value, self.intervals + 1).astype(
            np.int64
        )
    )
    ax.set_xticks(mdates.date2num(xticks.to_pydatetime()))
    ax.set_xticklabels(xticks.strftime('%Y-%m-%d'), rotation=45, fontsize=6)

    ymin, ymax = self.ylim
    ystep = round((ymax - ymin) / self.intervals) or (
        (ymax - ymin) / self.intervals
    )
    ax.set_yticks(np.arange(ymin, ymax + ystep / 2, ystep))
    ax.tick_params(axis='y', labelsize=6)
    ax.grid(True, color=GRID_COLOR, linewidth=0.5, linestyle='--')
    ax.set_xlim(mdates.date2num([start.to_pydatetime(), stop.to_pydatetime()]))
    ax.set_ylim(ymin, ymax)
    return ax


@dataclasses.dataclass
class LegendLayer(Layer):
  """Legend with one colored square per series, right of the axes."""

  palette: dict[str, str]

  def draw(self, ax):
    handles = [
        Line2D([], [], marker='s', linestyle='', color=color, label=label)
        for label, color in self.palette.items()
    ]
    ax.legend(
        handles=handles,
        loc='center left',
        bbox_to_anchor=(1.0, 0.5),
        fontsize=8,
        frameon=False,
    )
    return ax


class TemporalPlotBuilder:
  """Composes plot layers; `build` draws them in the order they were added."""

  def __init__(self):
    self._layers = []

  @property
  def layers(self) -> tuple[Layer, ...]:
    return tuple(self._layers)

  def add(self, layer: Layer) -> 'TemporalPlotBuilder':
    self._layers.append(layer)
    return self

  def build(
      self, ax: t.Optional[matplotlib.axes.Axes] = None
  ) -> matplotlib.axes.Axes:
    if ax is None:
      _, ax = plt.subplots()
    return functools.reduce(lambda ax, layer: layer.draw(ax), self._layers, ax)


def _default_ylim(frames: abc.Iterable[pd.DataFrame]) -> tuple[float, float]:
  frames = list(frames)
  lo = np.nanmin([f['minimum'].min() for f in frames])
  hi = np.nanmax([f['maximum'].max() for f in frames])
  if np.isnan(lo) or np.isnan(hi):
    raise ValueError('all series are empty')
  lo, hi = np.floor(lo * 100) / 100, np.ceil(hi * 100) / 100
  lo, hi = float(lo), float(hi)
  if lo == hi:
    lo, hi = lo - 1, hi + 1
  return lo, hi


def temporal_plot(
    series: abc.Sequence[tuple[str, xr.DataArray]],
    aggregation: t.Optional[aggregations.Aggregation] = None,
    region: t.Optional[Region] = None,
    colors: t.Optional[abc.Sequence[str]] = None,
    linewidth: float = 1.0,
    linestyle: str = '-',
    show_na: bool = False,
    ax: t.Optional[matplotlib.axes.Axes] = None,
    title: t.Optional[str] = None,
    ylabel: t.Optional[str] = None,
    xlim: t.Optional[tuple[t.Any, t.Any]] = None,
    ylim: t.Optional[tuple[float, float]] = None,
    seed: int = 0,
) -> matplotlib.axes.Axes:
  """Overlays labelled series with their ensemble spread.

  Each series is spatially aggregated, reduced to its ensemble mean (line)
  and range (shaded band) and put on a regular date axis, so missing dates
  show as gaps. Grids, stations, single series and ensembles, and different
  periods can be mixed.

  Args:
    series: Ordered (label, data) pairs.
    aggregation: Spatial aggregation. Defaults to an unweighted mean.
    region: Optional region selected before spatial aggregation.
    colors: Optional colors, one per series.
    linewidth: Line width.
    linestyle: Line style.
    show_na: Shade periods without data.
    ax: Axes to draw on. A new figure is created if None.
    title: Plot title.
    ylabel: Value axis label.
    xlim: Date range. Defaults to the range of all series.
    ylim: Value range. Defaults to the range of all series, ensemble spread
      included.
    seed: Seed of the default color assignment.

  Returns:
    The axes.
  """
  series = list(series)
  if not series:
    raise ValueError('no series to plot')
  labels = [label for label, _ in series]
  if len(set(labels)) != len(labels):
    raise ValueError(f'duplicate series labels: {labels}')
  palette = assign_colors(labels, colors, seed)
  frames = {
      label: prepare_temporal_series(da, aggregation, region, name=label)
      for label, da in series
  }
  if ylim is None:
    ylim = _default_ylim(frames.values())
  if xlim is None:
    xlim = (
        min(frame.index.min() for frame in frames.values()),
        max(frame.index.max() for frame in frames.values()),
    )

  builder = TemporalPlotBuilder()
  for label, frame in frames.items():
    builder.add(SpreadLayer(frame, palette[label]))
    if show_na:
      builder.add(MissingLayer(frame))
    builder.add(
        LineLayer(frame, palette[label], label, linewidth, linestyle)
    )
  builder.add(GridLayer(xlim, ylim)).add(LegendLayer(palette))
  ax = builder.build(ax)
  if title:
    ax.set_title(title, fontsize=12)
  if ylabel:
    ax.set_ylabel(ylabel)
  return ax


def visualize_temporal(
    series: abc.Sequence[tuple[str, xr.DataArray]],
    viz_config: t.Optional[config.Viz] = None,
    aggregation: t.Optional[aggregations.Aggregation] = None,
    region: t.Optional[Region] = None,
    save_path: t.Optional[str] = None,
) -> matplotlib.figure.Figure:
  """Top-level temporal plot driven by a Viz config."""
  viz_config = viz_config or config.Viz()
  set_skillviz_style()
  fig, ax = plt.subplots(figsize=viz_config.figsize)
  temporal_plot(
      series,
      aggregation=aggregation,
      region=region,
      colors=viz_config.colors,
      linewidth=viz_config.linewidth,
      linestyle=viz_config.linestyle,
      show_na=viz_config.show_na,
      ax=ax,
      title=viz_config.title,
      ylabel=viz_config.ylabel,
      seed=viz_config.seed,
  )
  fig.tight_layout()
  if save_path is not None:
    _save(fig, save_path, **viz_config.save_kwargs)
  return fig
