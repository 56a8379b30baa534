"""
Boltzmann sampling of tuned systems:
    - structure   (Structure)
    - engine      (Sampler, sample, sample_many)
    - stats       (constructor_frequencies, size_summary)
"""

from . import structure
from . import engine
from . import stats

from .structure import *
from .engine import *
from .stats import *
