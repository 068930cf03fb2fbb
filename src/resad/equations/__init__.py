"""Residual equation assembly for the fully implicit, pressure and transport equation sets."""

from .base import *  # noqa
from .common import *  # noqa
from .transfer import *  # noqa
from .blackoil import *  # noqa
from .dual_porosity import *  # noqa
from .pressure import *  # noqa
from .transport import *  # noqa
from .dispatch import *  # noqa
