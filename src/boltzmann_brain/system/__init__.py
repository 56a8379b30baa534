"""
Unified import layer for the system model and its static checks:
    - model       (Ref, Atom, Epsilon, Seq, MSet, Constructor, Type, System)
    - checker     (check, SystemType, Diagnostic, CheckResult)
    - serialize   (system_to_dict, system_from_dict)
"""

from . import model
from . import checker
from . import serialize

from .model import *
from .checker import *
from .serialize import *
