# coralgrowth/pipeline.py
"""
CoralGrowthPipeline: end-to-end coral nursery growth report.

Workflow
--------
1. load_metadata()    : genotype → collection site table
2. load_datasheets()  : initial sheet + every field datasheet, normalized
3. assemble()         : longitudinal table, days, total linear extension
4. apply_breakages()  : re-key fragments after each recorded breakage
5. fit_model()        : mixed-effects model of log(TLE)
6. extract_trends()   : growth rate per nursery × genotype and per genotype
7. compare_groups()   : pairwise comparisons and compact letters
8. summarize()        : projected size, per-fragment rates
9. plot_*()           : delegate to coralgrowth.plotting
"""

import logging
import os

from coralgrowth.assembly import assemble_dataset
from coralgrowth.breakage import load_breakage_report, merge_breakages
from coralgrowth.datasheets import (
    DatasheetLayout,
    list_datasheets,
    load_initial_sheet,
    read_datasheet,
)
from coralgrowth.metadata import attach_metadata, load_metadata
from coralgrowth.models import (
    compare_trends,
    fit_growth_model,
    fragment_growth_rates,
    growth_trends,
    prepare_model_frame,
    project_size,
)

logging.basicConfig(level=logging.INFO)


def _banner(title):
    print('=' * 60)
    print(title)
    print('=' * 60)


class CoralGrowthPipeline:
    """
    Coral outplant / nursery growth trial analysis.
    """

    def __init__(self, config):
        self.config = config
        self.layout = DatasheetLayout.from_config(config)

        # Inputs
        self.metadata = None
        self.baseline = None
        self.sheets = []

        # Longitudinal table
        self.data = None
        self.breakages = None

        # Model
        self.model_frame = None
        self.result = None

        # Estimates
        self.trends = {}
        self.comparisons = {}
        self.letters = {}
        self.fragment_rates = None
        self.projections = None

    # ------------------------------------------------------------------
    # STEP 1: METADATA
    # ------------------------------------------------------------------

    def load_metadata(self):
        _banner('STEP 1: LOAD GENOTYPE METADATA')
        self.metadata = load_metadata(self.config['paths']['metadata'], self.config)
        counts = self.metadata['source_location'].value_counts()
        print(f'✓ {len(self.metadata)} genotypes')
        print(counts.to_string(), '\n')

    # ------------------------------------------------------------------
    # STEP 2: DATASHEETS
    # ------------------------------------------------------------------

    def load_datasheets(self):
        _banner('STEP 2: LOAD DATASHEETS')
        paths = self.config['paths']
        self.baseline = load_initial_sheet(paths['initial'])
        print(f'✓ Initial sheet: {len(self.baseline)} rows')

        files = list_datasheets(paths['data_dir'], exclude=(paths['initial'], paths['breakage']))
        self.sheets = []
        for path in files:
            sheet = read_datasheet(path, self.layout)
            self.sheets.append(sheet)
            print(f'  ✓ {os.path.basename(path)}: {len(sheet)} rows')
        print(f'✓ {len(self.sheets)} datasheets loaded.\n')

    # ------------------------------------------------------------------
    # STEP 3: ASSEMBLY
    # ------------------------------------------------------------------

    def assemble(self):
        _banner('STEP 3: ASSEMBLE LONGITUDINAL DATASET')
        if self.baseline is None:
            print('❌ Run load_datasheets() first.\n')
            return

        self.data = assemble_dataset(self.baseline, self.sheets, self.config)
        print(f'✓ {len(self.data)} observations, '
              f'{self.data["date"].nunique()} survey dates, '
              f'days {self.data["days"].min()}–{self.data["days"].max()}')
        print(self.data['nursery'].value_counts(dropna=False).to_string(), '\n')

    # ------------------------------------------------------------------
    # STEP 4: BREAKAGE
    # ------------------------------------------------------------------

    def apply_breakages(self):
        _banner('STEP 4: BREAKAGE LEDGER')
        if self.data is None:
            print('❌ Run assemble() first.\n')
            return

        self.breakages = load_breakage_report(self.config['paths']['breakage'])
        self.data = merge_breakages(self.data, self.breakages)
        n_segments = self.data.groupby(['tree', 'coral_id', 'frag_id']).ngroups
        print(f'✓ {len(self.breakages)} breakage events, {n_segments} fragment lineages\n')

    # ------------------------------------------------------------------
    # STEP 5: MODEL
    # ------------------------------------------------------------------

    def fit_model(self):
        _banner('STEP 5: MIXED-EFFECTS GROWTH MODEL')
        if self.data is None:
            print('❌ Run assemble() first.\n')
            return

        model_cfg = self.config['model']
        self.model_frame = prepare_model_frame(self.data, self.config['unrecognized'])
        self.result = fit_growth_model(
            self.model_frame, model_cfg['formula'], model_cfg['re_formula'],
        )
        print(self.result.summary())
        print()

    # ------------------------------------------------------------------
    # STEP 6: TRENDS
    # ------------------------------------------------------------------

    def extract_trends(self):
        _banner('STEP 6: GROWTH RATES')
        if self.result is None:
            print('❌ Run fit_model() first.\n')
            return

        alpha = self.config['model']['alpha']
        for by in (('nursery', 'coral_id'), ('coral_id',), ('nursery',)):
            trends = growth_trends(self.result, self.model_frame, by=by, alpha=alpha)
            if 'coral_id' in by and self.metadata is not None:
                trends = attach_metadata(trends, self.metadata)
            self.trends[by] = trends
            print(f'\n--- by {" × ".join(by)} ---')
            print(trends.to_string(index=False, float_format='%.4f'))
        print()

    # ------------------------------------------------------------------
    # STEP 7: POST-HOC
    # ------------------------------------------------------------------

    def compare_groups(self):
        _banner('STEP 7: POST-HOC COMPARISONS')
        if self.result is None:
            print('❌ Run fit_model() first.\n')
            return

        model_cfg = self.config['model']
        specs = {
            ('coral_id',): None,
            ('nursery',): None,
            ('nursery', 'coral_id'): 'nursery',
        }
        for by, within in specs.items():
            pairs, letters = compare_trends(
                self.result, self.model_frame, by=by, within=within,
                alpha=model_cfg['alpha'], method=model_cfg['p_adjust'],
            )
            self.comparisons[by] = pairs
            self.letters[by] = letters
            n_sig = int(pairs['significant'].sum()) if len(pairs) else 0
            print(f'\n--- by {" × ".join(by)}: {n_sig}/{len(pairs)} significant pairs ---')
            print(letters.to_string(index=False, float_format='%.4f'))
        print()

    # ------------------------------------------------------------------
    # STEP 8: SUMMARY
    # ------------------------------------------------------------------

    def summarize(self):
        _banner('STEP 8: SUMMARY')
        if self.model_frame is None:
            print('❌ Run fit_model() first.\n')
            return

        horizon = self.config['model']['horizon_days']
        initial = self.model_frame.loc[
            self.model_frame['days'] == self.model_frame['days'].min(), 'total_linear_extension'
        ].mean()

        self.fragment_rates = fragment_growth_rates(self.model_frame)
        print(f'✓ Per-fragment rates: {len(self.fragment_rates)} lineages, '
              f'median {self.fragment_rates["slope"].median():.4f} /day')

        if ('coral_id',) in self.trends:
            self.projections = project_size(self.trends[('coral_id',)], initial, horizon)
            print(f'  Projected TLE after {horizon} days from {initial:.1f} cm:')
            print(self.projections[['coral_id', 'projected_size',
                                    'projected_lower', 'projected_upper']]
                  .to_string(index=False, float_format='%.1f'))

        out_dir = self.config['paths']['output_dir']
        os.makedirs(out_dir, exist_ok=True)
        self.data.to_csv(os.path.join(out_dir, 'longitudinal_data.csv'), index=False)
        self.fragment_rates.to_csv(os.path.join(out_dir, 'fragment_rates.csv'), index=False)
        for by, trends in self.trends.items():
            fname = f'growth_rates_{"_".join(by)}.csv'
            if by in self.letters:
                trends = trends.merge(
                    self.letters[by][list(by) + ['letters']], on=list(by), how='left'
                )
            trends.to_csv(os.path.join(out_dir, fname), index=False)
        print(f'✓ Tables written to {out_dir}\n')

    # ------------------------------------------------------------------
    # PLOT DELEGATION WRAPPERS
    # ------------------------------------------------------------------

    def plot_timeseries(self, nursery=None):
        from coralgrowth.plotting import plot_timeseries
        return plot_timeseries(self.data, nursery=nursery,
                               save_dir=self.config['paths']['output_dir'])

    def plot_growth_rates(self, by=('coral_id',)):
        from coralgrowth.plotting import plot_growth_rates
        by = tuple(by)
        return plot_growth_rates(self.trends[by], by=by, letters=self.letters.get(by),
                                 save_dir=self.config['paths']['output_dir'])

    def plot_model_diagnostics(self):
        from coralgrowth.plotting import plot_model_diagnostics
        return plot_model_diagnostics(self.result, save_dir=self.config['paths']['output_dir'])

    # ------------------------------------------------------------------
    # FULL RUN
    # ------------------------------------------------------------------

    def run(self, plots=True):
        self.load_metadata()
        self.load_datasheets()
        self.assemble()
        self.apply_breakages()
        self.fit_model()
        self.extract_trends()
        self.compare_groups()
        self.summarize()
        if plots:
            for nursery in self.data['nursery'].dropna().unique():
                self.plot_timeseries(str(nursery))
            for by in self.trends:
                self.plot_growth_rates(by)
            self.plot_model_diagnostics()
        return self
