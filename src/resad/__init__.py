"""
*RESAD*

Black-oil and dual-porosity reservoir simulation core: automatic
differentiation, residual assembly, well control equations and the
nonlinear state update.
"""

from ._precision import *  # noqa
from .errors import *  # noqa
from .constants import *  # noqa
from .types import *  # noqa
from .config import *  # noqa
from .ad import *  # noqa
from .grids import *  # noqa
from .tables import *  # noqa
from .fluids import *  # noqa
from .models import *  # noqa
from .states import *  # noqa
from .status import *  # noqa
from .wells import *  # noqa
from .boundary_conditions import *  # noqa
from .equations import *  # noqa
from .updates import *  # noqa
from .linear_solvers import *  # noqa
from .simulate import *  # noqa
from .utils import *  # noqa

__version__ = "0.1.0"
