from __future__ import annotations

import logging


def configure_app_logging(level: str = "INFO") -> None:
    """
    Set the level for the ``orgscope`` logger tree.

    The ASGI server configures handlers; child loggers (``orgscope.services.cascade``
    and friends) inherit this level. Use ``ORGSCOPE_LOG_LEVEL=DEBUG`` to see
    scope denials.
    """

    normalized = level.upper()
    logging.getLogger("orgscope").setLevel(normalized)
    logging.getLogger("orgscope").propagate = True
