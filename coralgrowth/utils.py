# coralgrowth/utils.py
"""
Shared helper functions used across multiple package modules.
"""

import logging
import math

import numpy as np
import pandas as pd
from scipy.stats import pearsonr
from sklearn.linear_model import LinearRegression


def _carry_forward(values):
    """
    Fill blank entries with the most recent non-blank value.

    A blank is ``None``, NaN or a whitespace-only string.  Leading blanks
    (before any value has been seen) stay blank.  Returns a list the same
    length as *values*.
    """
    last = None
    out = []
    for v in values:
        if _is_blank(v):
            out.append(last)
        else:
            last = v
            out.append(v)
    return out


def _is_blank(v):
    if v is None:
        return True
    if isinstance(v, str):
        return v.strip() == ''
    try:
        return bool(pd.isna(v))
    except (TypeError, ValueError):
        return False


def _as_label(v):
    """
    Coerce a spreadsheet cell to an identifier string.

    Excel stores bare numbers as floats, so ``3.0`` becomes ``'3'``.
    Blank cells return None.
    """
    if _is_blank(v):
        return None
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v).strip()


def _sum_measurements(raw, delimiter=','):
    """
    Total linear extension of one cell of branch measurements.

    ``'3.5,2.0,NA'`` → 5.5.  Pieces that do not parse as a finite number
    are left out of the sum; a cell with no numeric piece gives NaN.
    """
    if _is_blank(raw):
        return np.nan
    if isinstance(raw, (int, float, np.number)):
        return float(raw) if math.isfinite(raw) else np.nan

    total, n = 0.0, 0
    for piece in str(raw).split(delimiter):
        try:
            x = float(piece.strip())
        except ValueError:
            continue
        if math.isfinite(x):
            total += x
            n += 1
    return total if n else np.nan


def _categorize_sites(values, sites, unrecognized='unrecognized'):
    """
    Map raw site codes onto a closed categorical.

    Codes are stripped and upper-cased; anything outside *sites* becomes
    *unrecognized* (logged).  Nulls stay null.
    """
    s = pd.Series(values, copy=True)
    cleaned = s.where(s.isna(), s.astype(str).str.strip().str.upper())
    unknown = cleaned.notna() & ~cleaned.isin(sites)
    if unknown.any():
        logging.warning(
            f'Unrecognized site codes {sorted(set(cleaned[unknown]))} '
            f'({int(unknown.sum())} rows)'
        )
        cleaned = cleaned.mask(unknown, unrecognized)
    return pd.Categorical(cleaned, categories=list(sites) + [unrecognized])


def _reg_stats(x, y, name=''):
    """
    Slope, intercept, Pearson r and R² of y ~ x.

    Requires at least 2 finite paired observations; returns a NaN dict
    otherwise.  With only 2 points r is undefined and left NaN.
    """
    x, y = np.asarray(x, dtype=float), np.asarray(y, dtype=float)
    m = np.isfinite(x) & np.isfinite(y)
    n = int(m.sum())
    if n < 2 or np.ptp(x[m]) == 0:
        return dict(slope=np.nan, intercept=np.nan, r=np.nan, r2=np.nan, n=n)
    model = LinearRegression().fit(x[m].reshape(-1, 1), y[m])
    r = np.nan
    if n >= 3 and np.ptp(y[m]) > 0:
        r, _ = pearsonr(x[m], y[m])
    logging.debug(f'{name}: slope={model.coef_[0]:.4f}, R={r:.3f} (n={n})')
    return dict(
        slope=float(model.coef_[0]),
        intercept=float(model.intercept_),
        r=float(r),
        r2=float(r ** 2),
        n=n,
    )
