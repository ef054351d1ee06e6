"""
Configuration management for ivfann.

Provides dataclasses for configuration and utilities
for loading settings from YAML files.
"""

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

import numpy as np
import yaml

from ivfann.clustering import KMeans, KMeansType, create_kmeans
from ivfann.core.exceptions import InvalidInput
from ivfann.distance import MetricEngine, MetricType
from ivfann.index import IVFIndex
from ivfann.utils.logging import setup_logger


CONFIG_ENV_VAR = "IVFANN_CONFIG"


@dataclass
class LloydConfig:
    """Lloyd k-means configuration."""
    cluster_count: int = 16
    max_iterations: int = 300
    tolerance: float = 1e-4


@dataclass
class MiniBatchConfig:
    """Mini-Batch k-means configuration."""
    cluster_count: int = 16
    batch_size: int = 1024
    max_iterations: int = 300
    max_no_improvement_iterations: int = 50
    tolerance: float = 1e-4


@dataclass
class HierarchicalConfig:
    """
    Hierarchical k-means configuration.

    ``min_cluster_size`` of None means ``max(2 * branch_factor, 2)``.
    """
    branch_factor: int = 2
    max_depth: int = 6
    min_cluster_size: Optional[int] = None
    max_iterations_per_level: int = 50
    tolerance: float = 1e-4


@dataclass
class Settings:
    """
    Main settings container for ivfann.

    Attributes:
        clustering_type: Clustering strategy (lloyd, mini_batch, hierarchical)
        metric_type: Distance kind (l2sq, dot, cosine)
        metric_engine: Distance engine (scalar, numpy, scipy or an alias)
        seed: Seed for the random source, None for OS entropy
        lloyd_config: Lloyd k-means settings
        mini_batch_config: Mini-Batch k-means settings
        hierarchical_config: Hierarchical k-means settings
        log_level: Logging level for the ivfann logger
    """
    clustering_type: str = KMeansType.LLOYD.value
    metric_type: str = MetricType.L2SQ_DISTANCE.value
    metric_engine: str = MetricEngine.NUMPY.value
    seed: Optional[int] = None

    lloyd_config: LloydConfig = field(default_factory=LloydConfig)
    mini_batch_config: MiniBatchConfig = field(default_factory=MiniBatchConfig)
    hierarchical_config: HierarchicalConfig = field(default_factory=HierarchicalConfig)

    log_level: str = "WARNING"

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        """Create Settings from dictionary."""
        data = dict(data)
        lloyd_data = data.pop("lloyd_config", None) or {}
        mini_batch_data = data.pop("mini_batch_config", None) or {}
        hierarchical_data = data.pop("hierarchical_config", None) or {}

        try:
            return cls(
                lloyd_config=LloydConfig(**lloyd_data),
                mini_batch_config=MiniBatchConfig(**mini_batch_data),
                hierarchical_config=HierarchicalConfig(**hierarchical_data),
                **data,
            )
        except TypeError as e:
            raise InvalidInput(f"Invalid configuration: {e}") from e

    def to_dict(self) -> dict:
        """Convert Settings to dictionary."""
        return asdict(self)

    def strategy_params(self) -> dict:
        """Parameters of the selected clustering strategy."""
        kmeans_type = KMeansType.from_name(self.clustering_type)
        if kmeans_type == KMeansType.LLOYD:
            return asdict(self.lloyd_config)
        elif kmeans_type == KMeansType.MINI_BATCH:
            return asdict(self.mini_batch_config)
        return asdict(self.hierarchical_config)

    def create_kmeans(
        self,
        random_state: Optional[np.random.Generator] = None,
    ) -> KMeans:
        """
        Build the configured clustering strategy.

        Args:
            random_state: Generator to draw from; defaults to one seeded
                with ``seed``
        """
        if random_state is None:
            random_state = self.seed
        return create_kmeans(
            self.clustering_type,
            self.metric_type,
            self.metric_engine,
            random_state=random_state,
            **self.strategy_params(),
        )

    def configure_logging(self) -> None:
        """Apply ``log_level`` to the ivfann logger."""
        setup_logger(level=self.log_level)

    def create_index(
        self,
        random_state: Optional[np.random.Generator] = None,
    ) -> IVFIndex:
        """Build an unbuilt IVF index around the configured strategy."""
        return IVFIndex(self.create_kmeans(random_state))


def get_default_config_path() -> Path:
    """Get path to default configuration file."""
    # Check for config in current directory
    local_config = Path("./config/default_config.yaml")
    if local_config.exists():
        return local_config

    # Check for config relative to this file
    module_config = Path(__file__).parent / "default_config.yaml"
    if module_config.exists():
        return module_config

    # Check environment variable
    env_config = os.environ.get(CONFIG_ENV_VAR)
    if env_config:
        return Path(env_config)

    return module_config


def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, uses default.

    Returns:
        Settings object with loaded configuration

    Example:
        >>> settings = load_config()
        >>> index = load_config("./my_config.yaml").create_index()
    """
    if config_path is None:
        path = get_default_config_path()
    else:
        path = Path(config_path)

    if not path.exists():
        # Return default settings if no config file
        return Settings()

    with open(path, "r") as f:
        data = yaml.safe_load(f)

    if data is None:
        return Settings()

    if not isinstance(data, dict):
        raise InvalidInput(f"Configuration in {path} must be a mapping")

    return Settings.from_dict(data)
