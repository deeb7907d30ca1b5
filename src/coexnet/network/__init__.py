"""
Co-expression network construction.

- backend: NetworkBackend interface and result containers
- pywgcna: PyWGCNA implementation of the interface
- builder: NetworkBuilder sequencing the WGCNA workflow
"""

from coexnet.network.backend import (
    NetworkBackend,
    SoftThresholdResult,
    ModuleMergeResult,
)
from coexnet.network.pywgcna import PyWGCNABackend
from coexnet.network.builder import NetworkBuilder, NetworkResult

__all__ = [
    'NetworkBackend',
    'SoftThresholdResult',
    'ModuleMergeResult',
    'PyWGCNABackend',
    'NetworkBuilder',
    'NetworkResult',
]
