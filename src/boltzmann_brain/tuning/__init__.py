"""
Numeric tuning of checked systems:
    - equations   (Equations, spectral_radius)
    - tuned       (Mode, TunedSystem)
    - oracle      (tune, Oracle, IterativeOracle, TuningFileOracle, select_oracle)
    - io          (write_tuning, read_tuning_data, load_tuning)
"""

from . import equations
from . import tuned
from . import oracle
from . import io

from .equations import *
from .tuned import *
from .oracle import *
from .io import *
