"""
Configuration file support for the coexnet CLI.

Supports YAML and JSON config files with CLI argument override.

Example config (YAML):

    input: data/normalized_counts.csv
    metadata:
      path: data/samples.csv
      sample_column: sample
      id_map: data/id_map.csv
    output: results/wgcna
    top_k_genes: 10000
    outliers:
      threshold: -2.5
      remove: false
    network:
      power: 8
      min_module_size: 30
      merge_cut_height: 0.25
    traits:
      columns: [diagnosis, sex, age_onset]
"""

import json
from argparse import Namespace
from pathlib import Path
from typing import Any, Dict, Tuple

import yaml

from coexnet.config import PipelineConfig
from coexnet.core.exceptions import ConfigurationError

__all__ = ['load_config', 'merge_config_with_args', 'ARG_TO_CONFIG']

# argparse dest -> location in the config dictionary
ARG_TO_CONFIG: Dict[str, Tuple[str, ...]] = {
    'input': ('expression',),
    'metadata': ('metadata', 'path'),
    'output': ('output',),
    'top_k': ('top_k_genes',),
    'plots': ('plots',),
    'plot_format': ('plot_format',),
    'sample_column': ('metadata', 'sample_column'),
    'id_map': ('metadata', 'id_map'),
    'normalize_ids': ('metadata', 'normalize_ids'),
    'drop_unused_metadata': ('metadata', 'drop_unused'),
    'outlier_threshold': ('outliers', 'threshold'),
    'linkage_method': ('outliers', 'linkage_method'),
    'remove_outliers': ('outliers', 'remove'),
    'powers': ('network', 'powers'),
    'power': ('network', 'power'),
    'rsquared_cut': ('network', 'rsquared_cut'),
    'mean_cut': ('network', 'mean_cut'),
    'network_type': ('network', 'network_type'),
    'tom_type': ('network', 'tom_type'),
    'correlation': ('network', 'correlation'),
    'min_module_size': ('network', 'min_module_size'),
    'deep_split': ('network', 'deep_split'),
    'merge_cut_height': ('network', 'merge_cut_height'),
    'threads': ('network', 'n_threads'),
    'traits': ('traits', 'columns'),
    'trait_method': ('traits', 'method'),
}


def load_config(config_path: Path) -> Dict[str, Any]:
    """
    Load configuration from YAML or JSON file.

    Parameters:
        config_path: Path to config file (.yaml, .yml, or .json)

    Returns:
        Dictionary with configuration values

    Raises:
        FileNotFoundError: If config file doesn't exist
        ConfigurationError: If file format is unsupported or invalid

    Examples:
        >>> config = load_config(Path("wgcna.yaml"))
        >>> print(config['outliers']['threshold'])
        -2.5
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    suffix = config_path.suffix.lower()

    try:
        with open(config_path, 'r') as f:
            if suffix in ('.yaml', '.yml'):
                config = yaml.safe_load(f)
            elif suffix == '.json':
                config = json.load(f)
            else:
                raise ConfigurationError(
                    f"Unsupported config format: {suffix}. "
                    f"Use .yaml, .yml, or .json"
                )
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in config file: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in config file: {e}") from e

    if config is None:
        return {}

    if not isinstance(config, dict):
        raise ConfigurationError("Config file must contain a dictionary/mapping at top level")

    return config


def merge_config_with_args(config: Dict[str, Any], args: Namespace) -> PipelineConfig:
    """
    Merge config file values with CLI arguments into a PipelineConfig.

    Priority (highest to lowest):
    1. CLI arguments that were given (every option defaults to None)
    2. Config file values
    3. PipelineConfig defaults

    Raises:
        ConfigurationError: If the merged configuration is invalid
    """
    merged: Dict[str, Any] = {
        key: dict(value) if isinstance(value, dict) else value
        for key, value in config.items()
    }
    if isinstance(merged.get('metadata'), (str, Path)):
        merged['metadata'] = {'path': merged['metadata']}
    if 'input' in merged and 'expression' not in merged:
        merged['expression'] = merged.pop('input')

    for arg_name, location in ARG_TO_CONFIG.items():
        value = getattr(args, arg_name, None)
        if value is None:
            continue
        target = merged
        for key in location[:-1]:
            section = target.get(key)
            if not isinstance(section, dict):
                section = {}
                target[key] = section
            target = section
        target[location[-1]] = value

    return PipelineConfig.from_dict(merged).check()
