# coralgrowth/plotting.py
"""
Figures for the coral growth report.

Each function takes plain DataFrames (or a fitted model) and returns the
matplotlib Figure; pass *save_dir* to also write a PNG.  The pipeline
wrappers in ``coralgrowth.pipeline.CoralGrowthPipeline`` call these with
their stored tables.
"""

import os

import matplotlib.pyplot as plt
import numpy as np
import seaborn as sns
from scipy import stats

from coralgrowth.config import COLORS


def _save(fig, save_dir, fname):
    if save_dir:
        os.makedirs(save_dir, exist_ok=True)
        fig.savefig(os.path.join(save_dir, fname), dpi=300, bbox_inches='tight')


def plot_timeseries(df, nursery=None, save_dir=None):
    """
    Total linear extension over elapsed days.

    One panel per nursery / tree, one line per fragment lineage, coloured
    by genotype.  Restrict to a single nursery with *nursery*.
    """
    data = df.dropna(subset=['total_linear_extension'])
    if nursery is not None:
        data = data[data['nursery'].astype(str) == nursery]
    if data.empty:
        raise ValueError('Nothing to plot.')

    data = data.assign(
        panel=data['nursery'].astype(str) + ' – tree ' + data['tree'].astype(str),
        lineage=data['coral_id'].astype(str) + ':' + data['frag_id'].astype(str),
    ).sort_values(['panel', 'lineage', 'days'])

    panels = sorted(data['panel'].unique())
    ncols = min(3, len(panels))
    nrows = int(np.ceil(len(panels) / ncols))
    fig, axes = plt.subplots(nrows, ncols, figsize=(6 * ncols, 4 * nrows),
                             sharex=True, squeeze=False)
    genotypes = sorted(data['coral_id'].astype(str).unique())
    palette = dict(zip(genotypes, sns.color_palette('husl', len(genotypes))))

    for ax, panel in zip(axes.flat, panels):
        sub = data[data['panel'] == panel]
        for _, g in sub.groupby('lineage'):
            ax.plot(g['days'], g['total_linear_extension'], 'o-',
                    color=palette[str(g['coral_id'].iloc[0])],
                    markersize=3, lw=1, alpha=0.7)
        ax.set_title(panel, fontweight='bold')
        ax.set_ylabel('TLE (cm)')
        ax.grid(True, alpha=0.3)
    for ax in axes.flat[len(panels):]:
        ax.set_visible(False)
    for ax in axes[-1]:
        ax.set_xlabel('Days since baseline')

    handles = [plt.Line2D([], [], color=c, marker='o', lw=1) for c in palette.values()]
    fig.legend(handles, genotypes, title='Genotype', loc='center right',
               bbox_to_anchor=(1.08, 0.5), fontsize=9)
    plt.tight_layout()

    _save(fig, save_dir, f'timeseries_{nursery or "all"}.png')
    return fig


def plot_growth_rates(trends, by=('coral_id',), letters=None, save_dir=None, fname=None):
    """
    Forest plot of growth rates with confidence intervals.

    *trends* comes from ``growth_trends``.  *letters* (from
    ``compare_trends``) is matched on the *by* columns and written beside
    each interval.  Points are coloured by nursery when that column is
    present.
    """
    by = list(by)
    data = trends.copy()
    if letters is not None:
        data = data.merge(letters[by + ['letters']], on=by, how='left')
    data['label'] = data[by].astype(str).agg(' / '.join, axis=1)
    data = data.sort_values('trend').reset_index(drop=True)

    fig, ax = plt.subplots(figsize=(8, 0.4 * len(data) + 1.5))
    y = np.arange(len(data))
    colors = (
        [COLORS.get(str(n), 'k') for n in data['nursery']]
        if 'nursery' in data.columns else ['k'] * len(data)
    )
    ax.hlines(y, data['lower'], data['upper'], colors=colors, lw=1.5)
    ax.scatter(data['trend'], y, c=colors, zorder=3, s=30)
    ax.axvline(0, color='gray', ls=':', lw=1)

    if 'letters' in data.columns:
        x_text = data['upper'].max()
        span = x_text - data['lower'].min()
        for yi, text in zip(y, data['letters']):
            if isinstance(text, str):
                ax.text(x_text + 0.03 * span, yi, text, va='center', fontsize=10)

    ax.set_yticks(y)
    ax.set_yticklabels(data['label'])
    ax.set_xlabel('Specific growth rate (log TLE day$^{-1}$)')
    ax.grid(True, axis='x', alpha=0.3)
    plt.tight_layout()

    _save(fig, save_dir, fname or f'growth_rates_{"_".join(by)}.png')
    return fig


def plot_model_diagnostics(result, save_dir=None):
    """Residuals vs fitted values and a normal Q-Q plot of residuals."""
    fitted = np.asarray(result.fittedvalues)
    resid = np.asarray(result.resid)

    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(12, 5))
    ax1.scatter(fitted, resid, s=10, alpha=0.6)
    ax1.axhline(0, color='r', ls='--', lw=1)
    ax1.set_xlabel('Fitted log TLE')
    ax1.set_ylabel('Residual')
    ax1.set_title('Residuals vs fitted', fontweight='bold')

    stats.probplot(resid, dist='norm', plot=ax2)
    ax2.set_title('Normal Q-Q', fontweight='bold')
    plt.tight_layout()

    _save(fig, save_dir, 'model_diagnostics.png')
    return fig
