# coralgrowth/models.py
"""
Growth models on the longitudinal table.

Specific growth rate is the slope of log(TLE) over elapsed days.  Rates
per nursery / genotype come from a linear mixed-effects model with a
random intercept and slope per fragment lineage; group trends are linear
contrasts of its fixed effects, compared pairwise with adjusted p-values
and summarised as compact letters.
"""

import logging
import string
import warnings
from itertools import combinations

import numpy as np
import pandas as pd
import patsy
import statsmodels.api as sm
from statsmodels.stats.multitest import multipletests

from coralgrowth.config import CONFIG
from coralgrowth.utils import _reg_stats


FACTORS = ['nursery', 'coral_id']
FRAGMENT_KEY = ['nursery', 'tree', 'coral_id', 'frag_id']


# ---------------------------------------------------------------------------
# Model frame & fit
# ---------------------------------------------------------------------------

def prepare_model_frame(df, unrecognized=None):
    """
    Rows usable for modelling, with ``log_tle`` and a ``fragment`` key.

    Drops rows with an unrecognized or missing nursery and rows whose total
    linear extension is missing or not positive.  Factor columns are cast
    to plain strings so unused categories do not enter the design.

    Raises
    ------
    ValueError
        If no rows remain.
    """
    if unrecognized is None:
        unrecognized = CONFIG['unrecognized']

    tle = pd.to_numeric(df['total_linear_extension'], errors='coerce')
    keep = (
        np.isfinite(tle) & (tle > 0)
        & df['nursery'].notna() & (df['nursery'].astype(object) != unrecognized)
        & df['days'].notna()
    )
    dropped = int((~keep).sum())
    if dropped:
        logging.info(f'Model frame: dropped {dropped} rows (missing TLE or nursery)')

    out = df.loc[keep].copy()
    if out.empty:
        raise ValueError('No rows left to model.')

    for col in FRAGMENT_KEY:
        out[col] = out[col].astype(str)
    out['days'] = out['days'].astype(float)
    out['log_tle'] = np.log(tle[keep].astype(float))
    out['fragment'] = out[FRAGMENT_KEY].agg('/'.join, axis=1)
    return out.reset_index(drop=True)


def _independent_columns(X, tol=1e-7):
    """
    Indices of the columns of *X* that are not linear combinations of
    earlier columns (small diagonal of R in X = QR).
    """
    r = np.abs(np.diag(np.linalg.qr(X, mode='r')))
    if not len(r):
        return []
    return [j for j, v in enumerate(r) if v > tol * r.max()]


def fit_growth_model(frame, formula=None, re_formula=None, reml=True):
    """
    Fit log(TLE) with a linear mixed-effects model.

    Fixed-effect columns aliased by the design (e.g. interaction terms of
    a nursery × genotype cell with no fragments) are dropped before
    fitting, so unbalanced trials still fit; the full patsy design is
    kept on ``result.model.design_info`` for building contrasts.

    Parameters
    ----------
    frame : pd.DataFrame
        Output of :func:`prepare_model_frame`.
    formula : str, optional
        Fixed-effects formula, default ``CONFIG['model']['formula']``
        (``log_tle ~ days * nursery * coral_id``).
    re_formula : str, optional
        Random-effects formula per fragment, default ``'~days'``.
    reml : bool
        Fit by REML (default) or ML.

    Returns
    -------
    statsmodels MixedLMResults
    """
    formula = formula or CONFIG['model']['formula']
    re_formula = re_formula or CONFIG['model']['re_formula']

    y, X = patsy.dmatrices(formula, frame, return_type='dataframe')
    Z = patsy.dmatrix(re_formula, frame, return_type='dataframe')

    kept = _independent_columns(X.values)
    aliased = [c for j, c in enumerate(X.columns) if j not in kept]
    if aliased:
        logging.warning(f'MixedLM: dropping {len(aliased)} aliased fixed effects: {aliased}')

    model = sm.MixedLM(y, X.iloc[:, kept], groups=frame.loc[y.index, 'fragment'],
                       exog_re=Z.loc[y.index])
    model.design_info = X.design_info
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter('always')
        result = model.fit(reml=reml)
    for w in caught:
        logging.warning(f'MixedLM: {w.message}')

    logging.info(
        f'MixedLM {formula} | {re_formula}: {int(result.nobs)} obs, '
        f'{frame["fragment"].nunique()} fragments, converged={result.converged}'
    )
    return result


# ---------------------------------------------------------------------------
# Marginal trends
# ---------------------------------------------------------------------------

def _trend_contrasts(result, frame, by):
    """
    Contrast rows giving d(log TLE)/d(days) per group of *by*.

    Each observed nursery × genotype cell gets the contrast
    X(days=1) − X(days=0), restricted to the fixed effects kept in the fit;
    a group's contrast is the unweighted mean over its observed cells.
    Cells surveyed on a single day have no estimable slope and are left
    out.
    """
    by = list(by)
    design_info = result.model.design_info
    factors = [c for c in FACTORS if c in frame.columns]

    n_days = frame.groupby(factors)['days'].nunique()
    flat = n_days[n_days < 2]
    if len(flat):
        logging.warning(f'No slope for cells surveyed on one day: {list(flat.index)}')
    cells = (
        n_days[n_days >= 2].index.to_frame(index=False)
        .sort_values(factors).reset_index(drop=True)
    )
    if cells.empty:
        raise ValueError('No nursery × genotype cell has more than one survey day.')

    columns = list(design_info.column_names)
    kept = [columns.index(c) for c in result.model.exog_names]
    x0, x1 = (
        np.asarray(patsy.build_design_matrices([design_info], cells.assign(days=d))[0])
        for d in (0.0, 1.0)
    )
    diff = (x1 - x0)[:, kept]

    groups = cells[by].drop_duplicates().reset_index(drop=True)
    keys = list(cells[by].itertuples(index=False, name=None))
    L = np.vstack([
        diff[np.array([k == g for k in keys])].mean(axis=0)
        for g in groups.itertuples(index=False, name=None)
    ])
    return groups, L


def growth_trends(result, frame, by=('nursery', 'coral_id'), alpha=None):
    """
    Estimated growth rate (log-TLE slope per day) per group.

    Parameters
    ----------
    result : MixedLMResults
    frame : pd.DataFrame
        The frame the model was fitted on.
    by : sequence of str
        Grouping columns, e.g. ``('coral_id',)`` or
        ``('nursery', 'coral_id')``.
    alpha : float, optional
        Confidence level is ``1 - alpha``; default ``CONFIG['model']['alpha']``.

    Returns
    -------
    pd.DataFrame
        *by* columns plus trend, se, lower, upper.
    """
    if alpha is None:
        alpha = CONFIG['model']['alpha']
    groups, L = _trend_contrasts(result, frame, by)
    tt = result.t_test(L)
    ci = np.asarray(tt.conf_int(alpha=alpha))

    out = groups.copy()
    out['trend'] = np.asarray(tt.effect).ravel()
    out['se'] = np.asarray(tt.sd).ravel()
    out['lower'] = ci[:, 0]
    out['upper'] = ci[:, 1]
    return out


def _letter(k):
    letter = string.ascii_lowercase[k % 26]
    return letter if k < 26 else f'{letter}{k // 26}'


def _absorb(columns):
    unique = []
    for c in columns:
        if c not in unique:
            unique.append(c)
    return [c for c in unique if not any(c < other for other in unique)]


def compact_letters(groups, pvalues, alpha=0.05):
    """
    Compact letter display (insert-absorb).

    Parameters
    ----------
    groups : sequence
        Group labels; letters are handed out in this order.
    pvalues : dict
        ``{(a, b): p}`` for compared pairs.  Missing pairs and NaN p-values
        count as not significant.
    alpha : float

    Returns
    -------
    dict
        ``{group: letters}``; two groups share a letter unless their
        difference is significant.
    """
    groups = list(groups)
    columns = [set(groups)]
    for (a, b), p in pvalues.items():
        if not p < alpha:
            continue
        split = []
        for col in columns:
            if a in col and b in col:
                split.append(col - {b})
                split.append(col - {a})
            else:
                split.append(col)
        columns = _absorb(split)

    order = {g: i for i, g in enumerate(groups)}
    columns.sort(key=lambda c: sorted(order[g] for g in c))
    letters = {g: '' for g in groups}
    for k, col in enumerate(columns):
        for g in col:
            letters[g] += _letter(k)
    return letters


def compare_trends(result, frame, by=('coral_id',), within=None, alpha=None, method=None):
    """
    Pairwise comparison of group growth rates.

    Parameters
    ----------
    result, frame
        As for :func:`growth_trends`.
    by : sequence of str
        Grouping columns.
    within : str, optional
        Only compare groups sharing this column's value (e.g. genotypes
        within each nursery); p-values are adjusted per level.
    alpha : float, optional
    method : str, optional
        ``multipletests`` method, default ``CONFIG['model']['p_adjust']``.

    Returns
    -------
    pairs : pd.DataFrame
        group_a, group_b, estimate, se, p_value, p_adj, significant
        (plus *within* when given).
    letters : pd.DataFrame
        *by* columns plus trend and letters.
    """
    if alpha is None:
        alpha = CONFIG['model']['alpha']
    method = method or CONFIG['model']['p_adjust']
    by = list(by)
    if within is not None and within not in by:
        by = [within] + by
    label_cols = [c for c in by if c != within] or by

    groups, L = _trend_contrasts(result, frame, by)
    trend = L @ np.asarray(result.fe_params)
    labels = groups[label_cols].astype(str).agg(' / '.join, axis=1).tolist()
    families = groups[within].tolist() if within else [None] * len(groups)

    pair_rows = []
    letters = [''] * len(groups)
    for fam in dict.fromkeys(families):
        idx = [i for i, f in enumerate(families) if f == fam]
        idx.sort(key=lambda i: -trend[i])
        pairs = list(combinations(idx, 2))
        pvalues = {}
        if pairs:
            tt = result.t_test(np.vstack([L[i] - L[j] for i, j in pairs]))
            p_raw = np.asarray(tt.pvalue).ravel()
            _, p_adj, _, _ = multipletests(p_raw, alpha=alpha, method=method)
            for (i, j), est, se, p, pa in zip(pairs, np.asarray(tt.effect).ravel(),
                                              np.asarray(tt.sd).ravel(), p_raw, p_adj):
                row = {
                    'group_a': labels[i],
                    'group_b': labels[j],
                    'estimate': est,
                    'se': se,
                    'p_value': p,
                    'p_adj': pa,
                    'significant': bool(pa < alpha),
                }
                if within:
                    row = {within: fam, **row}
                pair_rows.append(row)
                pvalues[(labels[i], labels[j])] = pa

        cld = compact_letters([labels[i] for i in idx], pvalues, alpha)
        for i in idx:
            letters[i] = cld[labels[i]]

    pair_cols = ([within] if within else []) + [
        'group_a', 'group_b', 'estimate', 'se', 'p_value', 'p_adj', 'significant',
    ]
    out = groups.copy()
    out['trend'] = trend
    out['letters'] = letters
    return pd.DataFrame(pair_rows, columns=pair_cols), out


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------

def project_size(trends, initial_size, horizon_days=None):
    """
    Projected TLE after *horizon_days* of growth at each group's rate.

    ``initial_size`` is a scalar or an array aligned with *trends*.
    Adds projected_size, projected_lower and projected_upper (from the
    trend confidence bounds when present).
    """
    if horizon_days is None:
        horizon_days = CONFIG['model']['horizon_days']
    out = trends.copy()
    initial = np.asarray(initial_size, dtype=float)
    out['projected_size'] = initial * np.exp(out['trend'] * horizon_days)
    if {'lower', 'upper'} <= set(out.columns):
        out['projected_lower'] = initial * np.exp(out['lower'] * horizon_days)
        out['projected_upper'] = initial * np.exp(out['upper'] * horizon_days)
    return out


def fragment_growth_rates(frame):
    """
    Descriptive per-fragment growth: OLS slope of log_tle on days.

    Fragments (lineage segments) with fewer than two usable observations
    are skipped.  Returns nursery, tree, coral_id, frag_id, slope,
    intercept, r, r2, n.
    """
    rows = []
    for key, g in frame.groupby(FRAGMENT_KEY, sort=True):
        stats = _reg_stats(g['days'], g['log_tle'], name='/'.join(map(str, key)))
        if not np.isfinite(stats['slope']):
            continue
        rows.append({**dict(zip(FRAGMENT_KEY, key)), **stats})
    cols = FRAGMENT_KEY + ['slope', 'intercept', 'r', 'r2', 'n']
    return pd.DataFrame(rows, columns=cols)
