"""
potdwall Decorators

Decorators shared by the potdwall click commands.
"""

import logging
import sys
from functools import wraps

from potdwall.errors import PotdError
from potdwall.cli_utils.console import fail

logger = logging.getLogger(__name__)


def catch_errors(func):
    """
    Catch and format potdwall errors with the "fail" console template and gracefully
    exit the application with an error code. This is the only place a failure is turned
    into an exit status; the scheduler only needs to know that the run failed.
    """

    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except PotdError as error:
            logger.debug("Run failed", exc_info=True)
            fail(str(error))
            sys.exit(1)

    return wrapper
