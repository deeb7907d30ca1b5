"""
Correlation statistics and trait association.

Modules:
    correlation: Pairwise-complete correlations and Student p-values
    traits: Trait encoding, module-trait and gene-trait tables
"""

from coexnet.stats.correlation import (
    TraitAssociation,
    pairwise_correlation,
    student_pvalue,
    correlate_with_pvalues,
)
from coexnet.stats.traits import (
    encode_traits,
    module_trait_association,
    gene_module_membership,
    gene_trait_significance,
)

__all__ = [
    'TraitAssociation',
    'pairwise_correlation',
    'student_pvalue',
    'correlate_with_pvalues',
    'encode_traits',
    'module_trait_association',
    'gene_module_membership',
    'gene_trait_significance',
]
