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
"""Exceptions raised by tercile verification.

Input problems are raised immediately to the caller. Statistical degeneracy is
kept as a separate family so callers can react, e.g. by widening the reference
period, without catching genuine input errors.
"""


class InputValidationError(ValueError):
  """Input data or parameters are invalid."""


class AlignmentError(InputValidationError):
  """Time axes of hindcast, observations and forecast cannot be reconciled."""


class DimensionError(InputValidationError):
  """Ensemble data lack a usable member or time dimension."""


class StatisticalDegeneracyError(ValueError):
  """Data are valid but too degenerate to compute stable terciles."""


class InsufficientDataError(StatisticalDegeneracyError):
  """Too few reference years to form stable terciles."""


class ZeroVarianceError(StatisticalDegeneracyError):
  """Observations do not vary over the reference period."""
