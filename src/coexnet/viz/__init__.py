"""
Static diagnostic figures (matplotlib/seaborn).

Examples
--------
>>> from coexnet.viz import NetworkVisualizer
>>>
>>> viz = NetworkVisualizer()
>>> fig = viz.plot_sample_dendrogram(outlier_result)
>>> fig.save("report/sample_dendrogram.pdf")
>>> fig.close()
"""

from coexnet.viz.core import Figure, configure_style
from coexnet.viz.plots import NetworkVisualizer

__all__ = [
    "Figure",
    "configure_style",
    "NetworkVisualizer",
]
