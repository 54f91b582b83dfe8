# coralgrowth/datasheets.py
"""
Field-datasheet parsing.

A datasheet is laid out as repeating column blocks, one block per tree::

    row 1-4   person / date / nursery / tree        (header block)
    row 5..   coral_id frag_id meas | coral_id frag_id meas   (data block)

Each block is ``block_width`` columns wide and holds two interleaved
sub-blocks of (coral_id, frag_id, measurement).  The layout is described
by :class:`DatasheetLayout` and checked before any slicing happens.
"""

import logging
import os

import pandas as pd

from coralgrowth.config import CONFIG
from coralgrowth.utils import _as_label, _carry_forward, _is_blank


NORMALIZED_COLUMNS = [
    'person', 'date', 'nursery', 'tree', 'coral_id', 'frag_id', 'measurement',
]


class LayoutError(ValueError):
    """A datasheet does not follow the repeating-block layout."""


class DatasheetLayout:
    """
    Declarative description of the datasheet grid.

    Parameters
    ----------
    header_fields : sequence of str
        One name per header row, top to bottom.
    block_width : int
        Columns per tree block.
    sub_block_roles : sequence of str
        Column roles inside one sub-block; ``block_width`` must be a
        multiple of its length.
    header_value_col : int
        Offset within a block of the column holding header values.
    label_rows : int
        Column-label rows at the top of the data block, skipped.
    """

    def __init__(self, header_fields=None, block_width=None,
                 sub_block_roles=None, header_value_col=None, label_rows=None):
        defaults = CONFIG['layout']
        self.header_fields = list(header_fields or defaults['header_fields'])
        self.block_width = int(block_width or defaults['block_width'])
        self.sub_block_roles = list(sub_block_roles or defaults['sub_block_roles'])
        self.header_value_col = int(
            defaults['header_value_col'] if header_value_col is None else header_value_col
        )
        self.label_rows = int(defaults['label_rows'] if label_rows is None else label_rows)
        self.validate()

    @classmethod
    def from_config(cls, config=None):
        return cls(**(config or CONFIG)['layout'])

    @property
    def header_rows(self):
        return len(self.header_fields)

    @property
    def sub_block_width(self):
        return len(self.sub_block_roles)

    @property
    def n_sub_blocks(self):
        return self.block_width // self.sub_block_width

    def validate(self):
        missing = {'coral_id', 'frag_id', 'measurement'} - set(self.sub_block_roles)
        if missing:
            raise LayoutError(f'Sub-block roles missing {sorted(missing)}')
        if self.block_width <= 0 or self.block_width % self.sub_block_width:
            raise LayoutError(
                f'Block width {self.block_width} is not a multiple of '
                f'sub-block width {self.sub_block_width}'
            )
        if not 0 <= self.header_value_col < self.block_width:
            raise LayoutError(f'Header value column {self.header_value_col} outside block')
        if self.label_rows < 0:
            raise LayoutError('label_rows must be >= 0')

    def check_grid(self, grid, name='datasheet'):
        """Raise LayoutError unless *grid* fits this layout."""
        n_rows, n_cols = grid.shape
        if n_cols == 0 or n_cols % self.block_width:
            raise LayoutError(
                f'{name}: {n_cols} columns is not a multiple of {self.block_width}'
            )
        if n_rows < self.header_rows:
            raise LayoutError(
                f'{name}: header block needs {self.header_rows} rows, found {n_rows}'
            )

    def __repr__(self):
        return (
            f'DatasheetLayout(header_fields={self.header_fields}, '
            f'block_width={self.block_width}, sub_block_roles={self.sub_block_roles})'
        )


def _empty_normalized():
    return pd.DataFrame({c: pd.Series(dtype=object) for c in NORMALIZED_COLUMNS})


def normalize_datasheet(grid, layout=None, name='datasheet'):
    """
    Reshape one raw datasheet grid into a long-form measurement table.

    Parameters
    ----------
    grid : pd.DataFrame
        Cell grid as read with ``header=None`` (positional columns).
    layout : DatasheetLayout, optional
        Defaults to the layout in ``CONFIG['layout']``.
    name : str
        Used in error and log messages.

    Returns
    -------
    pd.DataFrame
        Columns: person, date, nursery, tree, coral_id, frag_id,
        measurement.  Empty (with those columns) when the sheet has no data
        rows.

    Raises
    ------
    LayoutError
        If the column count is not a multiple of the block width or the
        header block is incomplete.
    """
    layout = layout or DatasheetLayout()
    layout.check_grid(grid, name)

    header = grid.iloc[:layout.header_rows]
    data = grid.iloc[layout.header_rows + layout.label_rows:]

    tables = []
    for start in range(0, grid.shape[1], layout.block_width):
        meta = {
            field: header.iat[i, start + layout.header_value_col]
            for i, field in enumerate(layout.header_fields)
        }

        stacked = []
        for k in range(layout.n_sub_blocks):
            lo = start + k * layout.sub_block_width
            sub = data.iloc[:, lo:lo + layout.sub_block_width]
            sub.columns = layout.sub_block_roles
            stacked.append(sub)
        block = pd.concat(stacked, ignore_index=True)
        if block.empty:
            continue

        block['coral_id'] = _carry_forward(block['coral_id'].tolist())
        padding = block['frag_id'].map(_is_blank) & block['measurement'].map(_is_blank)
        block = block.loc[~padding, ['coral_id', 'frag_id', 'measurement']].copy()
        if block.empty:
            continue

        for field, value in meta.items():
            block[field] = value
        tables.append(block)

    if not tables:
        logging.info(f'{name}: no data rows')
        return _empty_normalized()

    out = pd.concat(tables, ignore_index=True)[NORMALIZED_COLUMNS]
    for col in ('tree', 'coral_id', 'frag_id'):
        out[col] = out[col].map(_as_label)
    out['person'] = out['person'].map(_as_label)
    out['nursery'] = out['nursery'].map(_as_label)
    out['date'] = pd.to_datetime(out['date'], errors='coerce').dt.normalize()
    bad_dates = out['date'].isna()
    if bad_dates.any():
        logging.warning(f'{name}: {int(bad_dates.sum())} rows with unparseable date')
    return out


def _read_grid(path, header=0):
    ext = os.path.splitext(path)[1].lower()
    if ext == '.csv':
        return pd.read_csv(path, header=header, dtype=object)
    return pd.read_excel(path, header=header, dtype=object)


def read_datasheet(path, layout=None):
    """
    Read and normalize one datasheet file (``.xlsx`` / ``.xls`` / ``.csv``).

    Spreadsheet readers drop trailing empty columns, so the grid is padded
    with blank columns up to the next whole block before normalizing.
    """
    layout = layout or DatasheetLayout()
    grid = _read_grid(path, header=None)
    n_cols = grid.shape[1]
    if n_cols % layout.block_width:
        grid = grid.reindex(columns=range(n_cols + (-n_cols % layout.block_width)))
    out = normalize_datasheet(grid, layout=layout, name=os.path.basename(path))
    logging.info(f'{os.path.basename(path)}: {len(out)} measurements')
    return out


def load_initial_sheet(path):
    """
    Load the baseline sheet, which is already in long form.

    Column names are stripped, lower-cased and snake-cased
    (``'Coral ID'`` → ``'coral_id'``).  ``person`` is optional.

    Raises
    ------
    LayoutError
        If any of date, nursery, tree, coral_id, frag_id, measurement is
        missing.
    """
    df = _read_grid(path)
    df.columns = [str(c).strip().lower().replace(' ', '_') for c in df.columns]
    required = [c for c in NORMALIZED_COLUMNS if c != 'person']
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise LayoutError(f'{os.path.basename(path)}: missing columns {missing}')
    if 'person' not in df.columns:
        df['person'] = None

    df = df[NORMALIZED_COLUMNS].copy()
    for col in ('person', 'nursery', 'tree', 'coral_id', 'frag_id'):
        df[col] = df[col].map(_as_label)
    df['date'] = pd.to_datetime(df['date'], errors='coerce').dt.normalize()
    return df


def list_datasheets(directory, exclude=()):
    """
    Sorted paths of spreadsheet files in *directory*.

    Skips files named in *exclude* (basenames or paths) and Office lock
    files (``~$...``).
    """
    skip = {os.path.basename(p) for p in exclude}
    paths = []
    for fname in sorted(os.listdir(directory)):
        if fname.startswith('~$') or fname in skip:
            continue
        if os.path.splitext(fname)[1].lower() in ('.xlsx', '.xls', '.csv'):
            paths.append(os.path.join(directory, fname))
    return paths
