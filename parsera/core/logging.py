import logging
import sys
from typing import List, Optional
import structlog
from parsera.core.config import settings
from parsera.core.exceptions import InvalidConfigurationException

def setup_logging(level: Optional[str] = None, json_logs: Optional[bool] = None) -> None:
    """Route the client's structlog output through stdlib logging.

    The client never calls this itself; applications opt in once at startup.
    """

    level_name = (level or settings.LOG_LEVEL).upper()
    log_level = logging.getLevelName(level_name)
    if not isinstance(log_level, int):
        raise InvalidConfigurationException(
            f"Unknown log level: {level_name}",
            details={"level": level_name}
        )
    if json_logs is None:
        json_logs = settings.LOG_JSON

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    logging.getLogger("parsera").setLevel(log_level)

    processors: List[structlog.typing.Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="ISO"),
        # retry and request logs are attributed to their call site
        structlog.processors.CallsiteParameterAdder(
            parameters=[structlog.processors.CallsiteParameter.FUNC_NAME,
                        structlog.processors.CallsiteParameter.LINENO]
        ),
        structlog.processors.format_exc_info,
    ]
    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
