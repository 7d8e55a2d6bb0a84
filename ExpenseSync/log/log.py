"""Application logging.

Everything is routed through the root logger: the stores and the sync machine
log with the module-level :mod:`logging` functions, and Qt's own warnings are
bridged in by :func:`qt_message_handler`. :func:`setup_logging` installs a
:class:`TankHandler` that keeps the recent history in memory, so a failed sync
can be inspected in the log viewer after the error notification expired.
"""
import collections
import logging
import sys

from PySide6.QtCore import QtMsgType, qInstallMessageHandler

from ..ui.actions import signals

LOG_LEVEL = logging.DEBUG
LOG_FORMAT = '[%(asctime)s] <%(module)s:%(threadName)s> %(levelname)s:  %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'

#: Upper bound of records kept by the tank; the oldest records are dropped first.
TANK_CAPACITY = 10_000

#: Modules whose records make up the sync history of the log viewer.
SYNC_MODULES = ('machine', 'provider', 'emitter', 'autosync')


def set_logging_level(level):
    """
    Sets the logging level for the root logger and its handlers.

    Args:
        level (int): The logging level to set. Should be one of the standard logging levels.
    """
    if not isinstance(level, int):
        raise ValueError('Logging level must be an integer.')
    if level not in (
            logging.DEBUG,
            logging.INFO,
            logging.WARNING,
            logging.ERROR,
            logging.CRITICAL,
    ):
        raise ValueError('Invalid logging level. Use one of the standard logging levels, e.g., logging.DEBUG.')

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers:
        handler.setLevel(level)


def qt_message_handler(mode, context, message):
    """
    Routes Qt's messages, e.g. QThread or QSettings warnings, to the 'Qt' logger.

    A fatal Qt message exits the application.
    """
    logger = logging.getLogger('Qt')
    message = message.strip()

    if mode == QtMsgType.QtDebugMsg:
        logger.debug(message)
    elif mode == QtMsgType.QtInfoMsg:
        logger.info(message)
    elif mode == QtMsgType.QtWarningMsg:
        logger.warning(message)
    elif mode == QtMsgType.QtCriticalMsg:
        logger.error(message)
    elif mode == QtMsgType.QtFatalMsg:
        logger.critical(message)
        sys.exit(1)


def setup_logging(enable_stream_handler=True, enable_qt_handler=True, log_level=LOG_LEVEL):
    """
    Configures the root logger, the log tank and optionally the Qt message handler.

    Sync runs log from their worker threads, so the format carries the thread name.

    Args:
        enable_stream_handler (bool): Also print records to stdout.
        enable_qt_handler (bool): Route Qt's own messages through Python logging.
        log_level (int): Level applied to the root logger and the handlers.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Clear all handlers to avoid formatting conflicts
    root_logger.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    if enable_stream_handler:
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(formatter)
        stream_handler.setLevel(log_level)
        root_logger.addHandler(stream_handler)

    tank_handler = TankHandler()
    tank_handler.setFormatter(formatter)
    tank_handler.setLevel(log_level)
    root_logger.addHandler(tank_handler)

    if enable_qt_handler:
        qInstallMessageHandler(qt_message_handler)


def get_tank():
    """
    Returns the TankHandler installed on the root logger, if any.

    Returns:
        TankHandler | None: The first tank handler found.
    """
    return next(
        (h for h in logging.getLogger().handlers if isinstance(h, TankHandler)),
        None
    )


class TankHandler(logging.Handler):
    """
    Keeps the most recent log records in memory for the log viewer.

    Each entry remembers the module that logged it, so the viewer can narrow
    the history down to the sync machine and its collaborators
    (:meth:`get_sync_logs`). An error, such as a failed transport call or a
    storage write that raised, asks the viewer to show itself via
    ``signals.showLogs``.

    Attributes:
        tank (collections.deque[tuple[int, str, str]]): Level, module and
            formatted message of each record, oldest first. At most
            ``capacity`` entries are kept.
    """

    def __init__(self, capacity=TANK_CAPACITY):
        super().__init__()
        self.capacity = capacity
        self.tank = collections.deque(maxlen=capacity)

    def emit(self, record):
        try:
            message = self.format(record)
            self.tank.append((record.levelno, record.module, message))
            if record.levelno >= logging.ERROR:
                signals.showLogs.emit()
        except (Exception, KeyboardInterrupt):
            self.handleError(record)

    def get_logs(self, level=logging.NOTSET, modules=None):
        """
        Returns stored messages at or above a level.

        Args:
            level (int, optional): The minimum logging level. Defaults to logging.NOTSET.
            modules (Iterable[str], optional): Only keep records logged by these modules.

        Returns:
            list[str]: Formatted log messages, oldest first.
        """
        if modules is not None:
            modules = frozenset(modules)
        return [
            msg for lvl, module, msg in self.tank
            if lvl >= level and (modules is None or module in modules)
        ]

    def get_sync_logs(self, level=logging.NOTSET):
        """Messages logged by the modules listed in SYNC_MODULES."""
        return self.get_logs(level, SYNC_MODULES)

    def clear_logs(self):
        self.tank.clear()
