# coralgrowth/breakage.py
"""
Breakage ledger: load the breakage report and split fragment histories
into lineage segments.

A fragment that breaks keeps growing from a smaller size, so measurements
before and after a break must not share an identity.  Each measurement row
is tagged with ``segment`` = number of breaks counted so far for its
physical fragment (``orig_frag_id``); ``frag_id`` is rewritten to
``<orig>_<segment>`` for segments after the first.

Breaks are counted only on rows whose date equals a recorded breakage date.
A break recorded on a date with no measurement of that fragment is never
counted (it is logged).
"""

import logging
import os

import pandas as pd

from coralgrowth.utils import _as_label


KEY = ['tree', 'coral_id', 'frag_id']

_TRUTHY = {'1', 'Y', 'YES', 'TRUE', 'T', 'X', 'BROKEN'}


def _is_flagged(v):
    label = _as_label(v)
    return label is not None and label.upper() in _TRUTHY


def load_breakage_report(path, flag_col='broken'):
    """
    Read the breakage report.

    Expects columns tree, coral_id, frag_id, date (as text) and,
    optionally, a breakage flag column (*flag_col*).  When the flag column
    is present only flagged rows are kept.  Rows with an unparseable date
    are dropped with a warning.

    Returns
    -------
    pd.DataFrame
        Columns: tree, coral_id, frag_id, date.
    """
    if os.path.splitext(path)[1].lower() == '.csv':
        df = pd.read_csv(path, dtype=object)
    else:
        df = pd.read_excel(path, dtype=object)
    df.columns = [str(c).strip().lower().replace(' ', '_') for c in df.columns]

    missing = [c for c in KEY + ['date'] if c not in df.columns]
    if missing:
        raise ValueError(f'{os.path.basename(path)}: missing columns {missing}')

    if flag_col in df.columns:
        df = df[df[flag_col].map(_is_flagged)]

    out = df[KEY + ['date']].copy()
    for col in KEY:
        out[col] = out[col].map(_as_label)
    out['date'] = pd.to_datetime(out['date'], errors='coerce').dt.normalize()

    bad = out['date'].isna()
    if bad.any():
        logging.warning(f'Breakage report: dropping {int(bad.sum())} rows with unparseable date')
        out = out[~bad]
    return out.reset_index(drop=True)


def merge_breakages(df, breakages):
    """
    Re-key fragments after each recorded breakage.

    Parameters
    ----------
    df : pd.DataFrame
        Assembled measurements with tree, coral_id, frag_id, date.
    breakages : pd.DataFrame
        Breakage events with tree, coral_id, frag_id, date.

    Returns
    -------
    pd.DataFrame
        Same rows as *df* plus ``orig_frag_id``, ``broke`` (row date
        matches a breakage) and ``segment`` (running count of breakage dates per
        physical fragment, in date order); ``frag_id`` is rewritten for
        ``segment > 0``.
    """
    events = breakages[KEY + ['date']].copy()
    events['date'] = pd.to_datetime(events['date']).dt.normalize().astype('datetime64[ns]')
    events = events.drop_duplicates()
    events['broke'] = True

    df = df.assign(date=pd.to_datetime(df['date']).astype('datetime64[ns]'))
    out = df.merge(events, on=KEY + ['date'], how='left', validate='many_to_one')
    out['broke'] = out['broke'].notna()

    matched = events.merge(df[KEY + ['date']].drop_duplicates(), on=KEY + ['date'])
    n_unmatched = len(events) - len(matched)
    if n_unmatched:
        logging.warning(
            f'{n_unmatched} breakage events match no measurement date and are not counted'
        )

    out = out.sort_values(KEY + ['date'], kind='mergesort')
    out['orig_frag_id'] = out['frag_id']
    # one break per fragment and date, however many rows share that date
    counted = out['broke'] & ~out.duplicated(KEY + ['date'])
    out['segment'] = (
        out.assign(counted=counted).groupby(KEY, dropna=False)['counted']
        .cumsum().astype(int)
    )
    rekey = out['segment'] > 0
    out.loc[rekey, 'frag_id'] = (
        out.loc[rekey, 'orig_frag_id'].astype(str)
        + '_'
        + out.loc[rekey, 'segment'].astype(str)
    )

    per_fragment = out.groupby(['tree', 'coral_id', 'orig_frag_id'], dropna=False)['segment'].max()
    logging.info(
        f'Breakage merge: {int(per_fragment.sum())} breaks, '
        f'{int(per_fragment.gt(0).sum())} fragments re-keyed'
    )
    return out.sort_index()


def lineages(df):
    """
    One row per fragment lineage segment.

    Columns: tree, coral_id, orig_frag_id, segment, frag_id, first_date,
    last_date, n_obs.
    """
    return (
        df.groupby(['tree', 'coral_id', 'orig_frag_id', 'segment'], observed=True)
        .agg(
            frag_id=('frag_id', 'first'),
            first_date=('date', 'min'),
            last_date=('date', 'max'),
            n_obs=('date', 'size'),
        )
        .reset_index()
    )
