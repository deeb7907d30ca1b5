"""
Diagnostic plots for the network analysis.

    - Sample dendrogram with outliers highlighted (sample QC)
    - Scale-free fit and mean connectivity against power
    - Gene dendrogram with dynamic and merged module color bars
    - Module-trait heatmap annotated with correlation and p-value
"""

from __future__ import annotations

from typing import Optional
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from matplotlib.colors import to_rgb
from scipy.cluster.hierarchy import dendrogram
import seaborn as sns

from coexnet.network.backend import SoftThresholdResult
from coexnet.network.builder import NetworkResult
from coexnet.quality.outliers import SampleOutlierResult
from coexnet.stats.correlation import TraitAssociation
from coexnet.viz.core import Figure, configure_style

__all__ = ['NetworkVisualizer']

OUTLIER_COLOR = '#d62728'


def _module_rgb(color: str) -> tuple[float, float, float]:
    # labels2colors may extend its palette as "<color>.<n>"
    base = str(color).split('.')[0]
    try:
        return to_rgb(base)
    except ValueError:
        return to_rgb('lightgrey')


class NetworkVisualizer:
    """
    Matplotlib/seaborn figures for each pipeline stage.

    Every method returns a Figure; callers save and close it.
    """

    def __init__(self, font_scale: float = 1.0):
        configure_style(font_scale=font_scale)

    def plot_sample_dendrogram(
        self,
        outliers: SampleOutlierResult,
        figsize: tuple[float, float] = (12, 5),
    ) -> Figure:
        """Sample tree over 1 - A; flagged samples drawn in red."""
        fig, ax = plt.subplots(figsize=figsize)
        labels = [str(s) for s in outliers.sample_ids]
        dendrogram(
            outliers.linkage,
            labels=labels,
            ax=ax,
            color_threshold=0,
            above_threshold_color='#333333',
            leaf_font_size=7,
        )
        flagged = set(outliers.outlier_ids)
        for tick in ax.get_xticklabels():
            if tick.get_text() in flagged:
                tick.set_color(OUTLIER_COLOR)
                tick.set_fontweight('bold')

        ax.set_ylabel("1 - similarity")
        ax.set_title(
            f"Sample clustering ({outliers.linkage_method} linkage): "
            f"{outliers.n_outliers} sample(s) with Z < {outliers.threshold:g}"
        )
        plt.tight_layout()

        return Figure(
            fig=fig,
            title="Sample Dendrogram",
            description=f"{len(labels)} samples, outliers: {outliers.outlier_ids}",
        )

    def plot_soft_threshold(
        self,
        sft: SoftThresholdResult,
        rsquared_cut: float = 0.9,
        figsize: tuple[float, float] = (10, 4.5),
    ) -> Figure:
        """Signed scale-free R² and mean connectivity for each power."""
        fig, (ax1, ax2) = plt.subplots(1, 2, figsize=figsize)
        powers = sft.fit['power'].to_numpy()
        signed = sft.signed_r_sq.to_numpy()

        ax1.scatter(powers, signed, s=0)
        for p, r in zip(powers, signed):
            ax1.text(p, r, str(p), ha='center', va='center', color=OUTLIER_COLOR, fontsize=9)
        ax1.axhline(rsquared_cut, color=OUTLIER_COLOR, linewidth=0.8)
        ax1.set_xlabel("Soft threshold (power)")
        ax1.set_ylabel("Scale free topology fit, signed R²")
        ax1.set_title("Scale independence")
        ax1.set_ylim(min(0.0, np.nanmin(signed) - 0.05), 1.05)

        mean_k = sft.fit['mean_k'].to_numpy()
        ax2.scatter(powers, mean_k, s=0)
        for p, k in zip(powers, mean_k):
            ax2.text(p, k, str(p), ha='center', va='center', color=OUTLIER_COLOR, fontsize=9)
        ax2.set_xlabel("Soft threshold (power)")
        ax2.set_ylabel("Mean connectivity")
        ax2.set_title("Mean connectivity")
        ax2.set_ylim(0, np.nanmax(mean_k) * 1.05 if len(mean_k) else 1)

        plt.tight_layout()
        return Figure(
            fig=fig,
            title="Soft Threshold",
            description=f"Power estimate {sft.power_estimate}",
        )

    def plot_gene_dendrogram(
        self,
        network: NetworkResult,
        figsize: tuple[float, float] = (12, 6),
    ) -> Figure:
        """Gene tree with dynamic and merged module colors underneath."""
        fig, (ax_tree, ax_colors) = plt.subplots(
            2, 1, figsize=figsize, gridspec_kw={'height_ratios': [4, 1]}, sharex=False
        )
        tree = dendrogram(
            network.gene_tree,
            no_labels=True,
            ax=ax_tree,
            color_threshold=0,
            above_threshold_color='#333333',
        )
        ax_tree.set_ylabel("1 - TOM")
        ax_tree.set_title(f"Gene clustering (power {network.power})")

        order = tree['leaves']
        rows = [
            [_module_rgb(c) for c in network.dynamic_colors.to_numpy()[order]],
            [_module_rgb(c) for c in network.module_colors.to_numpy()[order]],
        ]
        ax_colors.imshow(np.array(rows), aspect='auto', interpolation='nearest')
        ax_colors.set_yticks([0, 1])
        ax_colors.set_yticklabels(["Dynamic tree cut", "Merged dynamic"])
        ax_colors.set_xticks([])

        plt.tight_layout()
        return Figure(
            fig=fig,
            title="Gene Dendrogram",
            description=f"{network.n_modules} merged modules over {len(network.gene_ids):,} genes",
        )

    def plot_module_trait_heatmap(
        self,
        association: TraitAssociation,
        figsize: Optional[tuple[float, float]] = None,
    ) -> Figure:
        """Correlation heatmap, each cell annotated 'r (p)'."""
        cor = association.cor
        if figsize is None:
            figsize = (max(6, 1.2 * cor.shape[1] + 3), max(4, 0.45 * cor.shape[0] + 2))

        annotations = pd.DataFrame(
            [
                [
                    "" if np.isnan(r) else f"{r:.2f}\n({p:.1e})"
                    for r, p in zip(cor.loc[row], association.pvalue.loc[row])
                ]
                for row in cor.index
            ],
            index=cor.index,
            columns=cor.columns,
        )

        fig, ax = plt.subplots(figsize=figsize)
        sns.heatmap(
            cor.astype(float),
            annot=annotations,
            fmt="",
            cmap="RdBu_r",
            vmin=-1,
            vmax=1,
            center=0,
            linewidths=0.5,
            linecolor="white",
            cbar_kws={"label": f"{association.method.capitalize()} r"},
            annot_kws={"fontsize": 7},
            ax=ax,
        )
        ax.set_xlabel("")
        ax.set_ylabel("")
        ax.set_title("Module-trait relationships")
        plt.tight_layout()

        return Figure(
            fig=fig,
            title="Module-Trait Heatmap",
            description=f"{cor.shape[0]} modules × {cor.shape[1]} traits",
        )
