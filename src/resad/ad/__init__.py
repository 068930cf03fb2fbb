"""Forward mode automatic differentiation and discrete operators on cell values."""

from .jacobians import *  # noqa
from .forward import *  # noqa
from .functions import *  # noqa
from .operators import *  # noqa
