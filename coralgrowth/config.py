# coralgrowth/config.py
"""
Central configuration constants for the coral nursery growth report.

Edit the values under 'paths' to match the local data layout before
running the pipeline.
"""

CONFIG = {
    'paths': {
        # Directory holding the dated field datasheets
        'data_dir': 'data/datasheets/',
        # Genotype → collection-site table
        'metadata': 'data/coral_metadata.csv',
        # Pre-normalized baseline measurements
        'initial': 'data/datasheets/initial_data.xlsx',
        # Fragment breakage log
        'breakage': 'data/datasheets/breakage_report.xlsx',
        # Directory where figures and summary tables are saved
        'output_dir': 'output/',
    },
    'dates': {
        # Experiment start; elapsed days are counted from here
        'baseline': '2019-10-12',
    },
    # Nursery / collection-site codes
    'sites': ['BIM', 'NAS', 'CEI', 'CAT', 'EXU'],
    # Category given to site codes outside 'sites'
    'unrecognized': 'unrecognized',
    # coral_id written on a datasheet for an empty slot on the tree
    'empty_slot': 'EMPTY',
    # Separator between branch measurements in one cell
    'measurement_delimiter': ',',
    'layout': {
        'header_fields':    ['person', 'date', 'nursery', 'tree'],
        'block_width':      6,
        'sub_block_roles':  ['coral_id', 'frag_id', 'measurement'],
        # Column (within a block) holding the header values
        'header_value_col': 0,
        # Column-label rows at the top of the data block
        'label_rows':       0,
    },
    'model': {
        'formula':    'log_tle ~ days * nursery * coral_id',
        # Random intercept and slope on days per fragment
        're_formula': '~days',
        'alpha':      0.05,
        'p_adjust':   'holm',
        # Horizon for the projected-size summary
        'horizon_days': 365,
    },
}

COLORS = {
    'BIM': 'tab:blue',
    'NAS': 'tab:orange',
    'CEI': 'tab:green',
    'CAT': 'tab:red',
    'EXU': 'tab:purple',
    'unrecognized': 'gray',
}
