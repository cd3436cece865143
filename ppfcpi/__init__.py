from .main import *
from .api_bytes import *
from .api_files import *
from .errors import StructuralError, TruncationWarning
from .version import __version__
