import numpy as np
import pandas as pd
import pytest

from coralgrowth.assembly import (
    assemble_dataset,
    drop_empty_slots,
    elapsed_days,
    total_linear_extension,
)

from .conftest import measurement_rows


@pytest.fixture
def baseline():
    return measurement_rows([
        ('2019-10-12', 'BIM', '1', 'C1', '1', '2.0'),
        ('2019-10-12', 'BIM', '1', 'C2', '1', '1.5,1.5'),
        ('2019-10-12', 'BIM', '1', 'EMPTY', '2', None),
    ])


@pytest.fixture
def sheets():
    first = measurement_rows([
        ('2019-11-11', 'BIM', '1', 'C1', '1', '2.5'),
        ('2019-11-11', 'BIM', '1', 'C2', '1', '1.8,1.6'),
    ])
    second = measurement_rows([
        ('2019-12-11', 'BIM', '1', 'C1', '1', '3.0'),
        ('2019-12-11', 'BIM', '1', 'C2', '1', '2.0,NA'),
        ('2019-12-11', 'nas', '2', 'C3', '1', '4'),
        ('2019-12-11', 'BIM', '1', 'empty', '2', ''),
    ])
    return [first, second]


def test_total_linear_extension_excludes_non_numeric():
    tle = total_linear_extension(['3.5,2.0,NA', '1, 2 ', 'NA', 4, None, '2,x,1'])
    assert tle[0] == pytest.approx(5.5)
    assert tle[1] == pytest.approx(3.0)
    assert np.isnan(tle[2])
    assert tle[3] == 4.0
    assert np.isnan(tle[4])
    assert tle[5] == pytest.approx(3.0)


def test_elapsed_days():
    days = elapsed_days(['2019-11-11', '2019-10-12', '2019-10-02'], '2019-10-12')
    assert days.tolist() == [30, 0, -10]


def test_drop_empty_slots_is_case_insensitive(sheets):
    out = drop_empty_slots(sheets[1], 'EMPTY')
    assert 'empty' not in out['coral_id'].tolist()
    assert len(out) == 3


def test_assemble_concatenates_every_row(baseline, sheets):
    df = assemble_dataset(baseline, sheets)

    # 3 + 2 + 4 rows, minus one empty slot in the baseline and one in sheet 2
    assert len(df) == 7
    assert not df.duplicated().any()
    assert set(df['coral_id']) == {'C1', 'C2', 'C3'}


def test_assemble_derives_days_and_tle(baseline, sheets):
    df = assemble_dataset(baseline, sheets)

    c2 = df[df['coral_id'] == 'C2'].sort_values('date')
    assert c2['days'].tolist() == [0, 30, 60]
    assert c2['total_linear_extension'].tolist() == pytest.approx([3.0, 3.4, 2.0])


def test_assemble_closes_nursery_categories(baseline, sheets):
    sheets[0].loc[0, 'nursery'] = 'XYZ'
    df = assemble_dataset(baseline, sheets)

    assert list(df['nursery'].cat.categories) == [
        'BIM', 'NAS', 'CEI', 'CAT', 'EXU', 'unrecognized',
    ]
    assert (df['nursery'] == 'unrecognized').sum() == 1
    # lower-case codes are recognised
    assert (df['nursery'] == 'NAS').sum() == 1
    assert len(df) == 7


def test_assemble_uses_configured_baseline(baseline, sheets):
    config = {
        'dates': {'baseline': '2019-11-11'},
        'sites': ['BIM', 'NAS'],
        'unrecognized': 'other',
        'empty_slot': 'EMPTY',
        'measurement_delimiter': ',',
    }
    df = assemble_dataset(baseline, sheets, config)
    assert df['days'].min() == -30
    assert list(df['nursery'].cat.categories) == ['BIM', 'NAS', 'other']


def test_assemble_without_rows_raises():
    empty = measurement_rows([])
    with pytest.raises(ValueError):
        assemble_dataset(empty, [])
