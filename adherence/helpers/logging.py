from logging import Logger, _nameToLevel, basicConfig

from structlog import (
    configure_once,
    get_logger as structlog_get_logger,
    make_filtering_bound_logger,
)
from structlog.contextvars import merge_contextvars
from structlog.dev import ConsoleRenderer
from structlog.processors import (
    JSONRenderer,
    StackInfoRenderer,
    TimeStamper,
    UnicodeDecoder,
    add_log_level,
    format_exc_info,
)
from structlog.stdlib import PositionalArgumentsFormatter
from structlog.typing import Processor

from adherence.helpers.config import CONFIG

_config = CONFIG.monitoring.logging

# Default logging level for all the dependencies
basicConfig(level=_config.sys_level.value)

# Shared by both output formats
_processors: list[Processor] = [
    # Add contextvars support, used to carry medicine, owner and reminder ids
    merge_contextvars,
    # Add log level
    add_log_level,
    # Enable %s-style formatting
    PositionalArgumentsFormatter(),
    # Add timestamp
    TimeStamper(fmt="iso", utc=True),
    # Add exceptions info
    StackInfoRenderer(),
    # Decode Unicode to str
    UnicodeDecoder(),
]
if _config.json_format:
    # Exceptions as a string field, then one JSON object per line
    _processors += [format_exc_info, JSONRenderer()]
else:
    # Pretty printing in a terminal session
    _processors.append(ConsoleRenderer())

# Configure application logging
configure_once(
    cache_logger_on_first_use=True,
    context_class=dict,
    processors=_processors,
    wrapper_class=make_filtering_bound_logger(_nameToLevel[_config.app_level.value]),
)

# Framework does not exactly expose Logger, but that's easier to work with
logger: Logger = structlog_get_logger("medication-adherence")
