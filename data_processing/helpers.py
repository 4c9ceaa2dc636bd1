# outbreakwatch/data_processing/helpers.py
#
# Core Data Utilities
# Small numeric and text helpers shared by the ingestion
# pipeline and the analytics engines.

import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Optional, Type

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

# Pre-compiled regex for finding various "Not Available" strings.
_NA_REGEX_PATTERN = re.compile(
    r'(?i)^\s*(nan|none|n/a|#n/a|na|null|nil|<na>|undefined|unknown|-|)\s*$'
)


def convert_to_numeric(
    data: Any,
    default_value: Any = np.nan,
    target_type: Optional[Type] = None
) -> Any:
    """
    Robustly converts various inputs to a numeric type (scalar or Series),
    correctly handling common "Not Available" string representations.

    Args:
        data: The input data, can be a scalar or pandas Series.
        default_value: The value to use for items that cannot be converted.
        target_type: The desired output type (int or float). If int, uses
                     pandas' nullable Int64Dtype when NaNs remain.

    Returns:
        The converted data in the same format as the input (scalar or Series).
    """
    is_series = isinstance(data, pd.Series)
    series = data if is_series else pd.Series([data], dtype=object)

    if pd.api.types.is_object_dtype(series.dtype) or pd.api.types.is_string_dtype(series.dtype):
        series = series.replace(_NA_REGEX_PATTERN, np.nan, regex=True)

    numeric_series = pd.to_numeric(series, errors='coerce')
    if not pd.isna(default_value):
        numeric_series = numeric_series.fillna(default_value)

    if target_type is int and pd.api.types.is_numeric_dtype(numeric_series.dtype):
        if numeric_series.isnull().any():
            numeric_series = numeric_series.astype(pd.Int64Dtype())
        else:
            numeric_series = numeric_series.astype(int)
    elif target_type is float:
        numeric_series = numeric_series.astype(float)

    if is_series:
        return numeric_series
    return numeric_series.iloc[0] if not numeric_series.empty else default_value


def normalize_key(value: Optional[str]) -> str:
    """Case- and whitespace-insensitive match key for areas and diseases."""
    if value is None:
        return ""
    return str(value).strip().casefold()


def clamp(value: float, lower: float, upper: float) -> float:
    return min(upper, max(lower, value))


def round_half_up(value: float) -> int:
    """Rounds to the nearest integer with .5 going up (towards +inf), unlike Python's round()."""
    return int(math.floor(value + 0.5))


def round_to(value: float, digits: int = 2) -> float:
    """Rounds a float for presentation, always returning a finite value."""
    if value is None or not math.isfinite(value):
        return 0.0
    return round(float(value), digits)


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching the stored report dates."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
