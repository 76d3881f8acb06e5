"""NEAT neuroevolution: genomes, species and a population training loop."""

from __future__ import annotations

from .client import Client
from .config import NeatParams, load_params
from .genes import MAX_NODES, ConnectionGene, Gene, NodeGene
from .genome import Genome, MutationPressure
from .innovations import InnovationRegistry, RegistryError
from .metrics import MetricsRow, MetricsWriter
from .network import (
    DEFAULT_ACTIVATIONS,
    Activation,
    DimensionMismatchError,
    FeedForwardNetwork,
)
from .persistence import load_state, save_state
from .population import Champion, FitHistory, Population
from .random_hash_set import RandomHashSet
from .reporters import EventLogger, ProgressPrinter
from .selection import RandomSelector
from .species import Species

__all__ = [
    "Activation",
    "Champion",
    "Client",
    "ConnectionGene",
    "DEFAULT_ACTIVATIONS",
    "DimensionMismatchError",
    "EventLogger",
    "FeedForwardNetwork",
    "FitHistory",
    "Gene",
    "Genome",
    "InnovationRegistry",
    "MAX_NODES",
    "MetricsRow",
    "MetricsWriter",
    "MutationPressure",
    "NeatParams",
    "NodeGene",
    "Population",
    "ProgressPrinter",
    "RandomHashSet",
    "RandomSelector",
    "RegistryError",
    "Species",
    "load_params",
    "load_state",
    "save_state",
]
