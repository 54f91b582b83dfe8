import pandas as pd
import pytest

from coralgrowth.datasheets import (
    NORMALIZED_COLUMNS,
    DatasheetLayout,
    LayoutError,
    list_datasheets,
    load_initial_sheet,
    normalize_datasheet,
    read_datasheet,
)

from .conftest import build_grid


HEADER_T1 = {'person': 'JD', 'date': '2019-11-11', 'nursery': 'BIM', 'tree': 1.0}
HEADER_T2 = {'person': 'JD', 'date': '2019-11-11', 'nursery': 'BIM', 'tree': 2.0}


def sample_grid():
    return build_grid([
        (
            HEADER_T1,
            [('C1', 1.0, '3.5,2'), (None, 2.0, '4'), ('C2', 1.0, '5')],
            [(None, 3.0, '1.0'), ('C3', 1.0, 'NA')],
        ),
        (
            HEADER_T2,
            [('C4', 1.0, '2.2'), (None, 2.0, '2.4')],
            [('C5', 1.0, '3')],
        ),
    ])


def test_normalize_stacks_sub_blocks_and_fills_down():
    out = normalize_datasheet(sample_grid())

    assert list(out.columns) == NORMALIZED_COLUMNS
    tree1 = out[out['tree'] == '1']
    assert tree1['coral_id'].tolist() == ['C1', 'C1', 'C2', 'C2', 'C3']
    assert tree1['frag_id'].tolist() == ['1', '2', '1', '3', '1']
    assert tree1['measurement'].tolist() == ['3.5,2', '4', '5', '1.0', 'NA']

    tree2 = out[out['tree'] == '2']
    assert tree2['coral_id'].tolist() == ['C4', 'C4', 'C5']
    assert (out['nursery'] == 'BIM').all()
    assert (out['person'] == 'JD').all()
    assert (out['date'] == pd.Timestamp('2019-11-11')).all()


def test_normalize_drops_padding_rows():
    out = normalize_datasheet(sample_grid())
    # 12 slots, 4 of them blank padding
    assert len(out) == 8


def test_normalize_is_idempotent():
    grid = sample_grid()
    pd.testing.assert_frame_equal(normalize_datasheet(grid), normalize_datasheet(grid))


def test_column_count_not_multiple_of_block_width():
    grid = sample_grid()
    grid[12] = None
    with pytest.raises(LayoutError, match='multiple of 6'):
        normalize_datasheet(grid)


def test_header_block_too_short():
    grid = sample_grid().iloc[:3]
    with pytest.raises(LayoutError, match='header block'):
        normalize_datasheet(grid)


def test_zero_data_rows_gives_empty_table():
    grid = sample_grid().iloc[:4]
    out = normalize_datasheet(grid)
    assert out.empty
    assert list(out.columns) == NORMALIZED_COLUMNS


def test_layout_validation():
    with pytest.raises(LayoutError):
        DatasheetLayout(block_width=7)
    with pytest.raises(LayoutError):
        DatasheetLayout(sub_block_roles=['coral_id', 'frag_id', 'length'])

    layout = DatasheetLayout()
    assert layout.header_rows == 4
    assert layout.n_sub_blocks == 2


def test_label_rows_are_skipped():
    grid = build_grid([
        (
            HEADER_T1,
            [('Coral', 'Frag', 'TLE'), ('C1', 1.0, '2')],
            [('Coral', 'Frag', 'TLE')],
        ),
    ])
    out = normalize_datasheet(grid, DatasheetLayout(label_rows=1))
    assert out['coral_id'].tolist() == ['C1']


def test_read_datasheet_from_excel_is_reproducible(tmp_path):
    path = tmp_path / '2019-11-11.xlsx'
    sample_grid().to_excel(path, header=False, index=False)

    first = read_datasheet(str(path))
    second = read_datasheet(str(path))
    pd.testing.assert_frame_equal(first, second)
    assert len(first) == 8
    assert first['tree'].unique().tolist() == ['1', '2']


def test_read_datasheet_pads_trailing_empty_columns(tmp_path):
    # only sub-block A is filled, so the saved sheet has 3 columns
    path = tmp_path / '2019-12-09.xlsx'
    grid = build_grid([(HEADER_T1, [('C1', 1.0, '3.5,2'), (None, 2.0, '4')], [])])
    grid.to_excel(path, header=False, index=False)
    assert pd.read_excel(path, header=None).shape[1] == 3

    out = read_datasheet(str(path))
    assert out['coral_id'].tolist() == ['C1', 'C1']
    assert out['frag_id'].tolist() == ['1', '2']


def test_load_initial_sheet(tmp_path):
    path = tmp_path / 'initial.xlsx'
    pd.DataFrame({
        'Date': ['2019-10-12', '2019-10-12'],
        'Nursery': ['BIM', 'NAS'],
        'Tree': [1, 2],
        'Coral ID': ['C1', 'C2'],
        'Frag ID': [1, 1],
        'Measurement': ['3', '2.5,1'],
    }).to_excel(path, index=False)

    out = load_initial_sheet(str(path))
    assert list(out.columns) == NORMALIZED_COLUMNS
    assert out['tree'].tolist() == ['1', '2']
    assert out['person'].isna().all()


def test_load_initial_sheet_missing_column(tmp_path):
    path = tmp_path / 'initial.csv'
    pd.DataFrame({'date': ['2019-10-12'], 'tree': [1]}).to_csv(path, index=False)
    with pytest.raises(LayoutError, match='missing columns'):
        load_initial_sheet(str(path))


def test_list_datasheets_skips_excluded(tmp_path):
    for name in ('b.xlsx', 'a.xlsx', 'initial.xlsx', 'breakage_report.csv',
                 '~$a.xlsx', 'notes.txt'):
        (tmp_path / name).write_text('')
    paths = list_datasheets(str(tmp_path), exclude=('data/initial.xlsx', 'breakage_report.csv'))
    assert [p.rsplit('/', 1)[-1] for p in paths] == ['a.xlsx', 'b.xlsx']
