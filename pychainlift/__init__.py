"""
pychainlift - chain-based genomic coordinate liftover
"""

__version__ = '0.1.0'

from . import _shared
from ._errors import ChainDataError, ChainDataWarning, ConfigurationError
from ._shared import CONFIG
from .batch import lift_intervals
from .chain import (
    Chain,
    ChainBlock,
    chains_from_df,
    chains_to_df,
    flip_range,
    make_chain,
    read_chains,
)
from .index import ChainIndex, ChainMap, load_chain_file, load_chain_map
from .liftover import (
    DEFAULT_CONFIG,
    DELETED,
    ENDS_DISAGREE,
    LIFTOVER_MINBLOCKS,
    LIFTOVER_MINMATCH,
    PARTIAL,
    SPLIT,
    LiftInterval,
    LiftoverConfig,
    LiftResult,
    Mapped,
    MappedMultiple,
    MappedRegion,
    Unmapped,
    chain_map_extension,
    lift_interval,
)
from .transform import Fragment, TransformResult, transform

__all__ = [
    # Configuration
    'CONFIG',
    'LiftoverConfig',
    'DEFAULT_CONFIG',
    'LIFTOVER_MINMATCH',
    'LIFTOVER_MINBLOCKS',

    # Errors
    'ConfigurationError',
    'ChainDataError',
    'ChainDataWarning',

    # Chains
    'Chain',
    'ChainBlock',
    'make_chain',
    'flip_range',
    'read_chains',
    'chains_to_df',
    'chains_from_df',

    # Indexing
    'ChainIndex',
    'ChainMap',
    'load_chain_map',
    'load_chain_file',
    'chain_map_extension',

    # Liftover
    'Fragment',
    'TransformResult',
    'transform',
    'LiftInterval',
    'MappedRegion',
    'LiftResult',
    'Mapped',
    'MappedMultiple',
    'Unmapped',
    'DELETED',
    'PARTIAL',
    'SPLIT',
    'ENDS_DISAGREE',
    'lift_interval',
    'lift_intervals',

    # Internal (shared)
    '_shared',
]
