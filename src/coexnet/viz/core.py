"""
Figure wrapper and plotting style.

Figure pairs a matplotlib figure with a title and description so the report
writer can save every plot the same way (300 dpi, tight bounding box, white
background) and release it afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Literal, Optional

import matplotlib.figure
import matplotlib.pyplot as plt
import seaborn as sns

__all__ = ['Figure', 'configure_style', 'OutputFormat']

OutputFormat = Literal["png", "pdf", "svg"]


@dataclass
class Figure:
    """
    A matplotlib figure with a title and a one-line description.

    Attributes
    ----------
    fig : matplotlib.figure.Figure
        The underlying figure
    title : str
        Human-readable title
    description : str
        What the figure shows
    metadata : dict
        Creation time and plot parameters

    Examples
    --------
    >>> figure.save("report/sample_dendrogram.pdf")
    PosixPath('report/sample_dendrogram.pdf')
    """
    fig: matplotlib.figure.Figure
    title: str
    description: str
    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        if "created_at" not in self.metadata:
            self.metadata["created_at"] = datetime.now().isoformat()

    def save(
        self,
        path: Path | str,
        format: Optional[OutputFormat] = None,
        dpi: int = 300,
        **kwargs
    ) -> Path:
        """
        Save figure to file; the format defaults to the path extension.

        Returns
        -------
        Path
            The path where the figure was saved.
        """
        path = Path(path)

        if format is None:
            format = path.suffix.lstrip(".").lower()
            if format not in ("png", "pdf", "svg"):
                format = "png"

        path.parent.mkdir(parents=True, exist_ok=True)
        save_kwargs = {
            "dpi": dpi,
            "bbox_inches": "tight",
            "facecolor": "white",
            **kwargs
        }
        self.fig.savefig(path, format=format, **save_kwargs)
        return path

    def close(self) -> None:
        """Release the figure's memory."""
        plt.close(self.fig)


def configure_style(font_scale: float = 1.0) -> None:
    """Paper style: white background, no top/right spines, 300 dpi."""
    sns.set_theme(context="paper", style="white", font_scale=font_scale)
    plt.rcParams.update({
        "figure.facecolor": "white",
        "axes.facecolor": "white",
        "axes.edgecolor": "#333333",
        "axes.spines.top": False,
        "axes.spines.right": False,
        "legend.frameon": False,
        "savefig.dpi": 300,
    })
