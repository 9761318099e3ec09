"""Package logger helpers.

All loggers live under the ``file_envelope`` namespace so applications can
enable them with ``logging.getLogger("file_envelope").setLevel(logging.DEBUG)``.
Records never include key material or plaintext.
"""

import logging

_ROOT_LOGGER_NAME = "file_envelope"

logging.getLogger(_ROOT_LOGGER_NAME).addHandler(logging.NullHandler())


def get_logger(name: str) -> logging.Logger:
    """Get a logger scoped under the package namespace.

    Args:
        name: Module name (usually ``__name__``)

    Returns:
        Logger instance
    """
    if name != _ROOT_LOGGER_NAME and not name.startswith(_ROOT_LOGGER_NAME + "."):
        name = f"{_ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
