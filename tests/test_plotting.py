import matplotlib.pyplot as plt
import pytest

from coralgrowth.models import compare_trends, growth_trends
from coralgrowth.plotting import plot_growth_rates, plot_model_diagnostics, plot_timeseries


def test_plot_timeseries_one_panel_per_tree(simulated, tmp_path):
    df, _ = simulated
    fig = plot_timeseries(df, save_dir=str(tmp_path))

    visible = [ax for ax in fig.axes if ax.get_visible() and ax.get_title()]
    assert len(visible) == 2
    assert (tmp_path / 'timeseries_all.png').exists()
    plt.close(fig)


def test_plot_timeseries_single_nursery(simulated):
    df, _ = simulated
    fig = plot_timeseries(df, nursery='NAS')
    titles = [ax.get_title() for ax in fig.axes if ax.get_title()]
    assert titles == ['NAS – tree 2']
    plt.close(fig)

    with pytest.raises(ValueError):
        plot_timeseries(df, nursery='EXU')


def test_plot_growth_rates_with_letters(fitted, tmp_path):
    frame, result, _ = fitted
    trends = growth_trends(result, frame, by=('nursery', 'coral_id'))
    _, letters = compare_trends(result, frame, by=('coral_id',), within='nursery')

    fig = plot_growth_rates(trends, by=('nursery', 'coral_id'), letters=letters,
                            save_dir=str(tmp_path))
    ax = fig.axes[0]
    assert len(ax.get_yticklabels()) == 4
    assert sorted(t.get_text() for t in ax.texts) == sorted(letters['letters'])
    assert (tmp_path / 'growth_rates_nursery_coral_id.png').exists()
    plt.close(fig)


def test_plot_model_diagnostics(fitted):
    _, result, _ = fitted
    fig = plot_model_diagnostics(result)
    assert len(fig.axes) == 2
    plt.close(fig)
