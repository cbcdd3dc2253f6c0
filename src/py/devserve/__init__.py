from .http.model import (
	HTTPRequest,
	HTTPResponse,
)  # NOQA: F401
from .config import ServerConfig  # NOQA: F401
from .model import ConfigurationError, BindError, NotFound  # NOQA: F401
from .services.files import FileService  # NOQA: F401
from .server import ServerInstance, run  # NOQA: F401

__version__: str = "1.0.0"

# EOF
