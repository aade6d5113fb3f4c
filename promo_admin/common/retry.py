######################################################################
# Copyright 2016, 2024 John J. Rofrano. All Rights Reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# https://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
######################################################################

"""
Module: retry

Single re-run of a service operation after a session refresh. Only
authentication-flavoured failures qualify; everything else propagates.
"""

import logging
from functools import wraps

from sqlalchemy.exc import DBAPIError

from promo_admin.models import db
from promo_admin.services.auth import AuthenticationError

logger = logging.getLogger("promo_admin")


def is_session_error(error: BaseException) -> bool:
    """True for expired/invalid sessions and dropped database connections"""
    while error is not None:
        if isinstance(error, AuthenticationError):
            return True
        if isinstance(error, DBAPIError) and error.connection_invalidated:
            return True
        error = error.__cause__
    return False


def with_retry(retries: int = 1):
    """Decorates a service method; the service must expose `gate`"""

    def decorator(operation):
        @wraps(operation)
        def wrapper(self, *args, **kwargs):
            remaining = retries
            while True:
                try:
                    return operation(self, *args, **kwargs)
                except Exception as error:  # pylint: disable=broad-except
                    if remaining <= 0 or not is_session_error(error):
                        raise
                    remaining -= 1
                    logger.info("Retrying %s with refreshed session...", operation.__name__)
                    db.session.rollback()
                    self.gate.ensure_authenticated(force_refresh=True)

        return wrapper

    return decorator
