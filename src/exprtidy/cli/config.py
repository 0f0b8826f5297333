"""
Configuration file support for the exprtidy CLI.

Supports YAML and JSON config files with CLI argument override.

Example ``pipeline.yaml``:

    mapping:
      source_col: ensembl_gene_id
      target_col: hgnc_symbol
    aggregation:
      reducer: median
    join:
      policy: inner
      group_col: condition
    selection:
      criteria: ["FDR<0.05", "AUC>0.75"]
      factor_col: LV index
      label_col: pathway
    differential:
      min_total: 10
      reference: CTRL
"""

import json
from argparse import Namespace
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from exprtidy.core.errors import ConfigurationError


@dataclass
class MappingConfig:
    """Identifier mapping configuration."""
    source_col: str = "source_id"
    target_col: str = "target_id"
    source_namespace: str = "ensembl_gene"
    target_namespace: Optional[str] = None
    species: str = "human"
    cache_dir: Optional[str] = None


@dataclass
class AggregationConfig:
    """Duplicate-record reduction and factorization prep."""
    reducer: str = "mean"
    zscore: bool = False
    min_genes: int = 1


@dataclass
class JoinConfig:
    """Sample metadata join configuration."""
    policy: str = "strict"
    sample_col: Optional[str] = None
    group_col: str = "group"


@dataclass
class SelectionConfig:
    """Factor significance selection configuration."""
    criteria: List[str] = field(default_factory=list)
    factor_col: str = "LV index"
    label_col: Optional[str] = None
    derive_fdr: Optional[str] = None


@dataclass
class DifferentialConfig:
    """Differential-expression handoff configuration."""
    min_total: Optional[float] = 10
    reference: Optional[str] = None
    alternative: Optional[str] = None
    alpha: float = 0.05


@dataclass
class PipelineConfig:
    """
    Complete configuration schema for all exprtidy commands.

    Mirrors the CLI argument structure for consistency.
    """
    output: Optional[Path] = None
    metadata: Optional[Path] = None
    mapping: MappingConfig = field(default_factory=MappingConfig)
    aggregation: AggregationConfig = field(default_factory=AggregationConfig)
    join: JoinConfig = field(default_factory=JoinConfig)
    selection: SelectionConfig = field(default_factory=SelectionConfig)
    differential: DifferentialConfig = field(default_factory=DifferentialConfig)

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "PipelineConfig":
        """
        Build from a loaded config mapping, rejecting unknown keys.

        Raises:
            ConfigurationError: On unknown sections or keys
        """
        sections = {f.name: f for f in fields(cls)}
        unknown = [k for k in config if k not in sections]
        if unknown:
            raise ConfigurationError("unknown config sections", keys=unknown)

        kwargs: Dict[str, Any] = {}
        for name, value in config.items():
            section_type = SECTION_TYPES.get(name)
            if section_type is None:
                kwargs[name] = Path(value) if value is not None else None
                continue
            if value is None:
                continue
            if not isinstance(value, dict):
                raise ConfigurationError(f"config section '{name}' must be a mapping")
            allowed = {f.name for f in fields(section_type)}
            bad = [k for k in value if k not in allowed]
            if bad:
                raise ConfigurationError(f"unknown keys in config section '{name}'", keys=bad)
            kwargs[name] = section_type(**value)
        return cls(**kwargs)


SECTION_TYPES = {
    'mapping': MappingConfig,
    'aggregation': AggregationConfig,
    'join': JoinConfig,
    'selection': SelectionConfig,
    'differential': DifferentialConfig,
}

# (section, config key) -> argparse destination
ARG_NAMES = {
    (None, 'output'): 'output',
    (None, 'metadata'): 'metadata',
    ('mapping', 'source_col'): 'source_col',
    ('mapping', 'target_col'): 'target_col',
    ('mapping', 'source_namespace'): 'source_namespace',
    ('mapping', 'target_namespace'): 'mygene',
    ('mapping', 'species'): 'species',
    ('mapping', 'cache_dir'): 'cache_dir',
    ('aggregation', 'reducer'): 'reducer',
    ('aggregation', 'zscore'): 'zscore',
    ('aggregation', 'min_genes'): 'min_genes',
    ('join', 'policy'): 'join_policy',
    ('join', 'sample_col'): 'sample_col',
    ('join', 'group_col'): 'group_col',
    ('selection', 'criteria'): 'criteria',
    ('selection', 'factor_col'): 'factor_col',
    ('selection', 'label_col'): 'label_col',
    ('selection', 'derive_fdr'): 'derive_fdr',
    ('differential', 'min_total'): 'min_total',
    ('differential', 'reference'): 'reference',
    ('differential', 'alternative'): 'alternative',
    ('differential', 'alpha'): 'alpha',
}

PATH_ARGS = ('output', 'metadata', 'cache_dir')


def load_config(config_path: Path) -> Dict[str, Any]:
    """
    Load configuration from YAML or JSON file.

    Parameters:
        config_path: Path to config file (.yaml, .yml, or .json)

    Returns:
        Dictionary with configuration values

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If file format is unsupported or invalid

    Examples:
        >>> config = load_config(Path("pipeline.yaml"))
        >>> print(config['aggregation']['reducer'])
        median
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
                raise ValueError(
                    f"Unsupported config format: {suffix}. "
                    f"Use .yaml, .yml, or .json"
                )
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in config file: {e}") from e
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in config file: {e}") from e

    if config is None:
        return {}

    if not isinstance(config, dict):
        raise ValueError("Config file must contain a dictionary/mapping at top level")

    return config


def _merge_value(cli_value: Any, config_value: Any, was_explicitly_set: bool) -> Any:
    """
    Merge a single config value with CLI argument.

    Rules:
    - CLI args ALWAYS override config if explicitly set
    - If CLI arg not set, use config value
    - If neither set, keep CLI default
    """
    if was_explicitly_set:
        return cli_value

    if config_value is not None:
        return config_value

    return cli_value


def _explicit_args(cli_args: Optional[List[str]]) -> set:
    """Destinations of long-form options present on the command line."""
    explicit = set()
    for arg in cli_args or []:
        if arg.startswith('--'):
            explicit.add(arg[2:].split('=', 1)[0].replace('-', '_'))
    return explicit


def merge_config_with_args(
    config: Dict[str, Any],
    args: Namespace,
    cli_args: Optional[List[str]] = None,
) -> Namespace:
    """
    Merge config file values with CLI arguments.

    Priority (highest to lowest):
    1. Explicitly provided CLI arguments
    2. Config file values
    3. CLI argument defaults

    Only destinations the running subcommand defines are touched.

    Parameters:
        config: Configuration dictionary from load_config()
        args: Parsed CLI arguments (argparse.Namespace)
        cli_args: Raw CLI arguments list (for detecting explicit values)
                  If None, assumes all args are defaults

    Returns:
        Updated Namespace with merged values

    Raises:
        ConfigurationError: On unknown config sections or keys
    """
    PipelineConfig.from_dict(config)
    explicit = _explicit_args(cli_args)
    merged = Namespace(**vars(args))

    for (section, key), arg_name in ARG_NAMES.items():
        source = config if section is None else (config.get(section) or {})
        if key not in source or not hasattr(merged, arg_name):
            continue
        value = source[key]
        if value is not None and arg_name in PATH_ARGS:
            value = Path(value)
        setattr(merged, arg_name, _merge_value(getattr(merged, arg_name), value, arg_name in explicit))

    return merged
