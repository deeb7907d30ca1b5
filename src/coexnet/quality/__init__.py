"""
Sample and gene quality control.

- filtering: VarianceFilter keeps the most variable genes
- outliers: SampleOutlierDetector flags poorly connected samples
"""

from coexnet.quality.filtering import VarianceFilter, VarianceRanking
from coexnet.quality.outliers import SampleOutlierDetector, SampleOutlierResult

__all__ = [
    'VarianceFilter',
    'VarianceRanking',
    'SampleOutlierDetector',
    'SampleOutlierResult',
]
