"""
boltzmann_brain: well-foundedness checking, numeric tuning and
anticipated-rejection sampling of combinatorial systems.

Typical use::

    from boltzmann_brain import System, Type, Constructor, tune, sample, Mode

    trees = System([Type("T", [Constructor("Leaf", ["@"]),
                               Constructor("Node", ["@", "T", "T"])])])
    tuned = tune(trees, Mode.CUMULATIVE)
    tree = sample(tuned, "T", 10, 50, seed=1)
"""

from .errors import *
from .config import SamplerConfig, TuningConfig
from .system import *
from .tuning import *
from .sampler import *
from .pipeline import BoltzmannPipeline, PipelineConfig, enforce_warnings

__version__ = "0.1.0"
