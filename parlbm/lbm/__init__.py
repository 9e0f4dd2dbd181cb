from .errors import *
from .config import *
from .stencil import *
from .lattice import *
from .collisions import *
from .stream import *
from .boundary import *
from .barrier import *
from .worker import *
from .results import *
from .simulation import *
