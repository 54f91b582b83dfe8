# coralgrowth/metadata.py
"""
Static genotype metadata (coral_id → collection site).
"""

import logging
import os

import pandas as pd

from coralgrowth.config import CONFIG
from coralgrowth.utils import _as_label, _categorize_sites


def load_metadata(path, config=None):
    """
    Read the genotype table.

    Needs a ``coral_id`` column and a ``source_location`` column
    (``location`` / ``site`` are accepted as aliases).  Site codes are
    categorised like nursery codes; duplicated genotypes keep their first
    row.
    """
    config = config or CONFIG
    if os.path.splitext(path)[1].lower() == '.csv':
        df = pd.read_csv(path, dtype=object)
    else:
        df = pd.read_excel(path, dtype=object)
    df.columns = [str(c).strip().lower().replace(' ', '_') for c in df.columns]

    for alias in ('location', 'site', 'source'):
        if 'source_location' not in df.columns and alias in df.columns:
            df = df.rename(columns={alias: 'source_location'})
    missing = [c for c in ('coral_id', 'source_location') if c not in df.columns]
    if missing:
        raise ValueError(f'{os.path.basename(path)}: missing columns {missing}')

    meta = df[['coral_id', 'source_location']].copy()
    meta['coral_id'] = meta['coral_id'].map(_as_label)
    meta = meta.dropna(subset=['coral_id'])

    dup = meta['coral_id'].duplicated()
    if dup.any():
        logging.warning(f'Metadata: {int(dup.sum())} duplicated coral_id rows ignored')
        meta = meta[~dup]

    meta['source_location'] = _categorize_sites(
        meta['source_location'].tolist(), config['sites'], config['unrecognized']
    )
    return meta.reset_index(drop=True)


def attach_metadata(df, metadata):
    """
    Left-join ``source_location`` onto *df* by coral_id.

    Rows without a metadata entry are kept with a null source_location.
    """
    meta = metadata[['coral_id', 'source_location']].drop_duplicates('coral_id')
    out = df.merge(meta, on='coral_id', how='left', validate='many_to_one')
    n_missing = out.loc[out['source_location'].isna(), 'coral_id'].nunique()
    if n_missing:
        logging.warning(f'{n_missing} coral_id values have no metadata entry')
    return out
