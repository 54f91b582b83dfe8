import matplotlib

matplotlib.use('Agg')

import numpy as np
import pandas as pd
import pytest

from coralgrowth.datasheets import NORMALIZED_COLUMNS


HEADER_FIELDS = ['person', 'date', 'nursery', 'tree']


def build_grid(blocks):
    """
    Raw datasheet grid from ``(header, rows_a, rows_b)`` per tree block.

    *header* maps person/date/nursery/tree to values; rows are
    ``(coral_id, frag_id, measurement)`` tuples for each sub-block.
    """
    n_data = max(max(len(a), len(b)) for _, a, b in blocks)
    grid = [[None] * (6 * len(blocks)) for _ in range(4 + n_data)]
    for bi, (header, rows_a, rows_b) in enumerate(blocks):
        col = bi * 6
        for r, field in enumerate(HEADER_FIELDS):
            grid[r][col] = header[field]
        for k, rows in enumerate((rows_a, rows_b)):
            for i, row in enumerate(rows):
                for j, v in enumerate(row):
                    grid[4 + i][col + 3 * k + j] = v
    return pd.DataFrame(grid, dtype=object)


def measurement_rows(rows):
    """Normalized-table rows from ``(date, nursery, tree, coral, frag, meas)`` tuples."""
    df = pd.DataFrame(rows, columns=NORMALIZED_COLUMNS[1:])
    df.insert(0, 'person', 'JD')
    df['date'] = pd.to_datetime(df['date'])
    return df


def simulate_growth(seed=7, n_frags=4, days=(0, 30, 60, 90, 120, 150)):
    """
    Assembled-style table with known log-TLE slopes per nursery × genotype.

    Returns the table and the true slopes keyed by (nursery, coral_id).
    """
    rng = np.random.default_rng(seed)
    slopes = {
        ('BIM', 'A'): 0.010,
        ('BIM', 'B'): 0.010,
        ('NAS', 'A'): 0.020,
        ('NAS', 'B'): 0.010,
    }
    baseline = pd.Timestamp('2019-10-12')
    rows = []
    for (nursery, coral), slope in slopes.items():
        tree = '1' if nursery == 'BIM' else '2'
        for f in range(1, n_frags + 1):
            b0 = np.log(5.0) + rng.normal(0, 0.1)
            b1 = slope + rng.normal(0, 0.001)
            for d in days:
                tle = np.exp(b0 + b1 * d + rng.normal(0, 0.02))
                rows.append({
                    'person': 'JD',
                    'date': baseline + pd.Timedelta(days=d),
                    'nursery': nursery,
                    'tree': tree,
                    'coral_id': coral,
                    'frag_id': str(f),
                    'measurement': f'{tle:.3f}',
                    'days': d,
                    'total_linear_extension': tle,
                })
    df = pd.DataFrame(rows)
    df['nursery'] = pd.Categorical(
        df['nursery'], categories=['BIM', 'NAS', 'CEI', 'CAT', 'EXU', 'unrecognized']
    )
    return df, slopes


@pytest.fixture(scope='session')
def simulated():
    return simulate_growth()


@pytest.fixture(scope='session')
def fitted(simulated):
    from coralgrowth.models import fit_growth_model, prepare_model_frame

    df, slopes = simulated
    frame = prepare_model_frame(df)
    result = fit_growth_model(frame)
    return frame, result, slopes


@pytest.fixture(scope='session')
def fitted_unbalanced(simulated):
    """Fit without any NAS fragments of genotype B (an empty cell)."""
    from coralgrowth.models import fit_growth_model, prepare_model_frame

    df, slopes = simulated
    df = df[~((df['nursery'] == 'NAS') & (df['coral_id'] == 'B'))]
    frame = prepare_model_frame(df)
    result = fit_growth_model(frame)
    return frame, result, {k: v for k, v in slopes.items() if k != ('NAS', 'B')}
