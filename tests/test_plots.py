"""Smoke tests for plotting helpers."""
import matplotlib.pyplot as plt

from latent_fib.plots import contamination_index_plot, sensitivity_plot


def test_contamination_index_plot(fitted, tmp_path):
    out = tmp_path / "gamma.png"
    fig, ax = contamination_index_plot(fitted, title="Index", outpath=out, dpi=50)
    assert out.exists()
    assert ax.get_title() == "Index"
    assert len(ax.get_legend().get_texts()) == fitted.alpha.shape[0]
    plt.close(fig)


def test_sensitivity_plot(fitted):
    fig, ax = sensitivity_plot(fitted)
    assert len(ax.patches) == fitted.beta.size
    plt.close(fig)
