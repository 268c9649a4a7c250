from enum import Enum

from pydantic import BaseModel


class LoggingLevelEnum(str, Enum):
    # See: https://docs.python.org/3.13/library/logging.html#logging-levels
    CRITICAL = "CRITICAL"
    DEBUG = "DEBUG"
    ERROR = "ERROR"
    INFO = "INFO"
    WARNING = "WARNING"


class LoggingModel(BaseModel):
    app_level: LoggingLevelEnum = LoggingLevelEnum.INFO
    json_format: bool = False
    """Render one JSON object per line, for log collectors, instead of the console format."""
    quiet_idle_ticks: bool = True
    """Log ticks without any match, sweep or scan at debug level only."""
    sys_level: LoggingLevelEnum = LoggingLevelEnum.WARNING


class MonitoringModel(BaseModel):
    logging: LoggingModel = LoggingModel()  # Object is fully defined by default
