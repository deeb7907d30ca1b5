"""
Configuration schema for the coexnet pipeline.

Defaults follow the usual WGCNA tutorial settings: top 10,000 genes, sample
outlier cutoff Z = -2.5 on an average-linkage sample tree, unsigned network,
minimum module size 30, eigengene merge height 0.25.

Configs are built from nested dictionaries (YAML/JSON files, see
coexnet.cli.config) with PipelineConfig.from_dict(), which rejects unknown
keys so that typos in a config file fail loudly.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

from coexnet.core.exceptions import ConfigurationError
from coexnet.quality.outliers import LINKAGE_METHODS
from coexnet.stats.correlation import CORRELATION_METHODS

__all__ = [
    'PipelineConfig',
    'OutlierConfig',
    'NetworkConfig',
    'MetadataConfig',
    'TraitConfig',
    'DEFAULT_POWERS',
]

DEFAULT_POWERS = list(range(1, 11)) + list(range(12, 21, 2))


@dataclass
class OutlierConfig:
    """Sample outlier screen."""
    threshold: float = -2.5
    linkage_method: str = "average"
    remove: bool = False

    def validate(self) -> List[str]:
        errors = []
        if not isinstance(self.threshold, (int, float)) or math.isnan(self.threshold):
            errors.append(f"outliers.threshold must be a number, got {self.threshold!r}")
        if self.linkage_method not in LINKAGE_METHODS:
            errors.append(
                f"outliers.linkage_method must be one of {LINKAGE_METHODS}, got '{self.linkage_method}'"
            )
        return errors


@dataclass
class NetworkConfig:
    """Network construction and module detection."""
    powers: List[int] = field(default_factory=lambda: list(DEFAULT_POWERS))
    power: Optional[int] = None
    rsquared_cut: float = 0.9
    mean_cut: float = 100
    network_type: str = "unsigned"
    tom_type: str = "unsigned"
    correlation: str = "pearson"
    gene_linkage_method: str = "average"
    min_module_size: int = 30
    deep_split: int = 2
    merge_cut_height: float = 0.25
    n_threads: Optional[int] = None

    def validate(self) -> List[str]:
        from coexnet.network.backend import NETWORK_TYPES, TOM_TYPES

        errors = []
        if not self.powers or any(int(p) != p or p < 1 for p in self.powers):
            errors.append(f"network.powers must be positive integers, got {self.powers}")
        if self.power is not None and (int(self.power) != self.power or self.power < 1):
            errors.append(f"network.power must be a positive integer, got {self.power}")
        if not 0 < self.rsquared_cut <= 1:
            errors.append(f"network.rsquared_cut must be in (0, 1], got {self.rsquared_cut}")
        if self.mean_cut <= 0:
            errors.append(f"network.mean_cut must be positive, got {self.mean_cut}")
        if self.network_type not in NETWORK_TYPES:
            errors.append(f"network.network_type must be one of {NETWORK_TYPES}, got '{self.network_type}'")
        if self.tom_type not in TOM_TYPES:
            errors.append(f"network.tom_type must be one of {TOM_TYPES}, got '{self.tom_type}'")
        if self.correlation not in CORRELATION_METHODS:
            errors.append(
                f"network.correlation must be one of {CORRELATION_METHODS}, got '{self.correlation}'"
            )
        if self.gene_linkage_method not in LINKAGE_METHODS:
            errors.append(
                f"network.gene_linkage_method must be one of {LINKAGE_METHODS}, "
                f"got '{self.gene_linkage_method}'"
            )
        if self.min_module_size < 1:
            errors.append(f"network.min_module_size must be >= 1, got {self.min_module_size}")
        if self.deep_split not in (0, 1, 2, 3, 4):
            errors.append(f"network.deep_split must be 0-4, got {self.deep_split}")
        if not 0 < self.merge_cut_height < 1:
            errors.append(f"network.merge_cut_height must be in (0, 1), got {self.merge_cut_height}")
        if self.n_threads is not None and self.n_threads < 1:
            errors.append(f"network.n_threads must be >= 1, got {self.n_threads}")
        return errors


@dataclass
class MetadataConfig:
    """Sample metadata and identifier reconciliation."""
    sample_column: Optional[str] = None
    id_map: Optional[Path] = None
    normalize_ids: bool = True
    drop_unused: bool = False

    def validate(self) -> List[str]:
        return []


@dataclass
class TraitConfig:
    """Phenotype columns to correlate with modules (None = all)."""
    columns: Optional[List[str]] = None
    method: str = "pearson"

    def validate(self) -> List[str]:
        errors = []
        if self.columns is not None and len(self.columns) == 0:
            errors.append("traits.columns must list at least one column (omit it to use all)")
        if self.method not in CORRELATION_METHODS:
            errors.append(f"traits.method must be one of {CORRELATION_METHODS}, got '{self.method}'")
        return errors


@dataclass
class PipelineConfig:
    """
    Complete configuration for one pipeline run.

    Mirrors the CLI argument structure of `coexnet run`.
    """
    expression: Optional[Path] = None
    metadata_path: Optional[Path] = None
    output: Optional[Path] = None
    top_k_genes: int = 10000
    plots: bool = False
    plot_format: str = "png"
    outliers: OutlierConfig = field(default_factory=OutlierConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    metadata: MetadataConfig = field(default_factory=MetadataConfig)
    traits: TraitConfig = field(default_factory=TraitConfig)

    def validate(self) -> List[str]:
        errors = []
        if not isinstance(self.top_k_genes, int) or self.top_k_genes < 1:
            errors.append(f"top_k_genes must be a positive integer, got {self.top_k_genes!r}")
        if self.plot_format not in ('png', 'pdf', 'svg'):
            errors.append(f"plot_format must be png, pdf or svg, got '{self.plot_format}'")
        for section in (self.outliers, self.network, self.metadata, self.traits):
            errors.extend(section.validate())
        return errors

    def check(self) -> PipelineConfig:
        """Raise ConfigurationError listing every problem, else return self."""
        errors = self.validate()
        if errors:
            raise ConfigurationError(
                "Invalid configuration:\n" + "\n".join(f"  - {e}" for e in errors)
            )
        return self

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PipelineConfig:
        """
        Build from a nested dictionary.

        Top-level 'input' and 'metadata' keys may be given as paths; a
        'metadata' mapping configures MetadataConfig instead.

        Raises:
            ConfigurationError: Unknown keys or wrong section types
        """
        data = dict(data or {})
        sections = {
            'outliers': OutlierConfig,
            'network': NetworkConfig,
            'traits': TraitConfig,
        }
        kwargs: Dict[str, Any] = {}

        for key in ('expression', 'input'):
            if key in data:
                kwargs['expression'] = Path(data.pop(key))
        if 'output' in data:
            kwargs['output'] = Path(data.pop('output'))

        metadata = data.pop('metadata', None)
        if isinstance(metadata, (str, Path)):
            kwargs['metadata_path'] = Path(metadata)
        elif isinstance(metadata, dict):
            metadata = dict(metadata)
            if 'path' in metadata:
                kwargs['metadata_path'] = Path(metadata.pop('path'))
            if metadata.get('id_map') is not None:
                metadata['id_map'] = Path(metadata['id_map'])
            kwargs['metadata'] = _build(MetadataConfig, metadata, 'metadata')
        elif metadata is not None:
            raise ConfigurationError(f"'metadata' must be a path or mapping, got {type(metadata).__name__}")

        for name, section_cls in sections.items():
            if name in data:
                kwargs[name] = _build(section_cls, data.pop(name), name)

        scalar_names = {'top_k_genes', 'plots', 'plot_format'}
        unknown = set(data) - scalar_names
        if unknown:
            raise ConfigurationError(f"Unknown configuration key(s): {sorted(unknown)}")
        kwargs.update(data)
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-serializable dictionary (paths as strings)."""
        def _plain(value):
            if isinstance(value, Path):
                return str(value)
            if isinstance(value, dict):
                return {k: _plain(v) for k, v in value.items()}
            if isinstance(value, list):
                return [_plain(v) for v in value]
            return value
        return _plain(asdict(self))


def _build(section_cls, values: Any, name: str):
    if values is None:
        return section_cls()
    if not isinstance(values, dict):
        raise ConfigurationError(f"'{name}' must be a mapping, got {type(values).__name__}")
    allowed = {f.name for f in fields(section_cls)}
    unknown = set(values) - allowed
    if unknown:
        raise ConfigurationError(
            f"Unknown key(s) in '{name}': {sorted(unknown)}. Allowed: {sorted(allowed)}"
        )
    return section_cls(**values)
