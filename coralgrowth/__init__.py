# coralgrowth/__init__.py
"""
coralgrowth: Python package for the coral nursery growth trial report.

Usage
-----
Point ``CONFIG['paths']`` at the data directory, then::

    from coralgrowth import CoralGrowthPipeline, CONFIG

    pipeline = CoralGrowthPipeline(CONFIG).run()

Import dependency order (no circular imports):
    config → utils → datasheets → assembly / breakage / metadata
    → models → plotting → pipeline → __init__
"""

from coralgrowth.config import CONFIG, COLORS

from coralgrowth.datasheets import (
    DatasheetLayout,
    LayoutError,
    normalize_datasheet,
    read_datasheet,
    load_initial_sheet,
    list_datasheets,
)

from coralgrowth.assembly import (
    assemble_dataset,
    drop_empty_slots,
    elapsed_days,
    total_linear_extension,
)

from coralgrowth.breakage import (
    load_breakage_report,
    merge_breakages,
    lineages,
)

from coralgrowth.metadata import load_metadata, attach_metadata

from coralgrowth.models import (
    prepare_model_frame,
    fit_growth_model,
    growth_trends,
    compare_trends,
    compact_letters,
    project_size,
    fragment_growth_rates,
)

from coralgrowth.plotting import (
    plot_timeseries,
    plot_growth_rates,
    plot_model_diagnostics,
)

from coralgrowth.pipeline import CoralGrowthPipeline

__all__ = [
    # Config
    'CONFIG',
    'COLORS',
    # Datasheets
    'DatasheetLayout',
    'LayoutError',
    'normalize_datasheet',
    'read_datasheet',
    'load_initial_sheet',
    'list_datasheets',
    # Assembly
    'assemble_dataset',
    'drop_empty_slots',
    'elapsed_days',
    'total_linear_extension',
    # Breakage
    'load_breakage_report',
    'merge_breakages',
    'lineages',
    # Metadata
    'load_metadata',
    'attach_metadata',
    # Models
    'prepare_model_frame',
    'fit_growth_model',
    'growth_trends',
    'compare_trends',
    'compact_letters',
    'project_size',
    'fragment_growth_rates',
    # Plotting
    'plot_timeseries',
    'plot_growth_rates',
    'plot_model_diagnostics',
    # Pipeline class
    'CoralGrowthPipeline',
]
