from .controls import *  # noqa
from .base import *  # noqa
from .model import *  # noqa
