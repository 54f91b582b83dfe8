# coralgrowth/assembly.py
"""
Longitudinal dataset assembly.

Stacks the baseline sheet and every normalized datasheet into one table
and derives elapsed days and total linear extension per observation.
"""

import logging

import pandas as pd

from coralgrowth.config import CONFIG
from coralgrowth.datasheets import NORMALIZED_COLUMNS
from coralgrowth.utils import _categorize_sites, _sum_measurements


def drop_empty_slots(df, empty_slot=None):
    """Remove rows whose coral_id marks an empty slot on the tree."""
    if empty_slot is None:
        empty_slot = CONFIG['empty_slot']
    ids = df['coral_id'].astype(str).str.strip().str.upper()
    keep = ids != str(empty_slot).strip().upper()
    return df.loc[keep]


def elapsed_days(dates, baseline=None):
    """Whole days between *dates* and the baseline date (may be negative)."""
    if baseline is None:
        baseline = CONFIG['dates']['baseline']
    dates = pd.to_datetime(pd.Series(dates)).dt.normalize()
    return (dates - pd.Timestamp(baseline).normalize()).dt.days


def total_linear_extension(raw, delimiter=None):
    """Sum of the delimited branch measurements in each cell of *raw*."""
    if delimiter is None:
        delimiter = CONFIG['measurement_delimiter']
    return pd.Series(raw).map(lambda v: _sum_measurements(v, delimiter)).astype(float)


def assemble_dataset(baseline, sheets, config=None):
    """
    Build the longitudinal measurement table.

    Parameters
    ----------
    baseline : pd.DataFrame
        Normalized initial measurements (see ``load_initial_sheet``).
    sheets : iterable of pd.DataFrame
        Normalized datasheets (see ``read_datasheet``).
    config : dict, optional
        Defaults to ``CONFIG``.

    Returns
    -------
    pd.DataFrame
        Normalized columns plus ``days`` and ``total_linear_extension``,
        with ``nursery`` as a closed categorical.  Rows are never
        de-duplicated.
    """
    config = config or CONFIG

    frames = [baseline] + list(sheets)
    frames = [
        drop_empty_slots(f, config['empty_slot'])[NORMALIZED_COLUMNS]
        for f in frames if len(f)
    ]
    if not frames:
        raise ValueError('No measurements to assemble.')

    df = pd.concat(frames, ignore_index=True)
    df['date'] = pd.to_datetime(df['date']).dt.normalize()
    df['days'] = elapsed_days(df['date'], config['dates']['baseline'])
    df['total_linear_extension'] = total_linear_extension(
        df['measurement'], config['measurement_delimiter']
    )
    df['nursery'] = _categorize_sites(df['nursery'], config['sites'], config['unrecognized'])

    if (df['days'] < 0).any():
        logging.warning(f'{int((df["days"] < 0).sum())} rows predate the baseline date')
    n_missing = int(df['total_linear_extension'].isna().sum())
    if n_missing:
        logging.info(f'{n_missing} rows without a numeric measurement')

    return df.sort_values(['nursery', 'tree', 'coral_id', 'frag_id', 'date'],
                          kind='mergesort').reset_index(drop=True)
