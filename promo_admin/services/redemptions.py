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
Redemption Service

Lifecycle of redeemed codes (promo_code_requests joined to promo_codes):
listing, verification, restore to the available pool and cascading delete.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List

from sqlalchemy.exc import SQLAlchemyError

from promo_admin.common.retry import with_retry
from promo_admin.models import (
    DatabaseError,
    PromoCode,
    PromoCodeRequest,
    RecordNotFound,
    as_utc,
    db,
    utcnow,
)

logger = logging.getLogger("promo_admin")


@dataclass
class CascadeResult:
    """What a redeemed-code delete removed, and which codes it left behind"""

    deleted_requests: int = 0
    deleted_codes: int = 0
    orphaned_code_ids: List[str] = field(default_factory=list)

    def serialize(self) -> dict:
        """Serializes the result for JSON responses"""
        return {
            "deleted_requests": self.deleted_requests,
            "deleted_codes": self.deleted_codes,
            "orphaned_code_ids": list(self.orphaned_code_ids),
        }


def _redeemed_row(request_row: PromoCodeRequest, code: PromoCode) -> dict:
    redeemed_at = as_utc(request_row.created_at)
    return {
        "id": request_row.id,
        "code": code.code,
        "type": request_row.type,
        "region": request_row.region,
        "redeemed_at": redeemed_at.isoformat() if redeemed_at else None,
        "promo_code_id": request_row.promo_code_id,
        "verified": bool(request_row.verified),
        "user_identifier": request_row.user_identifier,
        "business_email": request_row.business_email,
    }


class RedemptionService:
    """Operations over promo_code_requests"""

    def __init__(self, gate, events):
        self.gate = gate
        self.events = events

    @with_retry()
    def get_redeemed_codes(self) -> List[dict]:
        """Redeemed codes, newest first; requests whose code is gone are skipped"""
        self.gate.ensure_authenticated()
        try:
            rows = PromoCodeRequest.find_redeemed()
        except SQLAlchemyError as error:
            db.session.rollback()
            logger.error("Error fetching redeemed codes: %s", error)
            raise DatabaseError(f"Failed to fetch redeemed codes: {error}") from error
        return [_redeemed_row(request_row, code) for request_row, code in rows]

    @with_retry()
    def toggle_verified_status(self, request_id: str, verified: bool) -> dict:
        """Sets the verified flag of one redemption"""
        self.gate.ensure_authenticated()
        request_row = PromoCodeRequest.find(request_id)
        if request_row is None:
            raise RecordNotFound(f"Redeemed code with id '{request_id}' was not found.")

        logger.info("Setting verified=%s on redemption %s", verified, request_id)
        request_row.verified = bool(verified)
        try:
            db.session.commit()
        except SQLAlchemyError as error:
            db.session.rollback()
            logger.error("Error updating verified status: %s", error)
            raise DatabaseError(f"Failed to update verified status: {error}") from error
        return request_row.serialize()

    @with_retry()
    def restore_redeemed_code(self, request_id: str) -> PromoCode:
        """
        Puts a redeemed code back into the available pool

        Deletes the redemption, clears the code's used flag and resets its
        creation time to now. Both writes share one transaction.
        """
        self.gate.ensure_authenticated()
        request_row = PromoCodeRequest.find(request_id)
        if request_row is None:
            raise RecordNotFound(f"Redeemed code with id '{request_id}' was not found.")

        code_id = request_row.promo_code_id
        logger.info("Restoring promo code %s from redemption %s", code_id, request_id)
        try:
            code = PromoCode.find(code_id)
            db.session.delete(request_row)
            if code is None:
                logger.warning("Redemption %s references missing promo code %s", request_id, code_id)
            else:
                code.is_used = False
                code.created_at = utcnow()
            db.session.commit()
        except SQLAlchemyError as error:
            db.session.rollback()
            logger.error("Error restoring code, rolled back: %s", error)
            raise DatabaseError(f"Failed to restore code: {error}") from error

        self.events.codes_changed.send(self, action="restore", ids=[code_id])
        return code

    @with_retry()
    def delete_redeemed_codes(self, ids: Iterable[str]) -> CascadeResult:
        """
        Deletes redemptions and, best effort, the codes they reference

        The request rows are the primary effect. Code cleanup runs in a
        savepoint; if it fails the requests stay deleted and the surviving
        code ids are reported as orphaned.
        """
        self.gate.ensure_authenticated()
        ids = [str(i) for i in ids]
        result = CascadeResult()
        if not ids:
            return result

        logger.info("Deleting %d redeemed codes", len(ids))
        try:
            code_ids = PromoCodeRequest.code_ids_for(ids)
            result.deleted_requests = PromoCodeRequest.remove_many(ids)
        except SQLAlchemyError as error:
            db.session.rollback()
            logger.error("Error deleting redeemed codes: %s", error)
            raise DatabaseError(f"Failed to delete redeemed codes: {error}") from error

        if code_ids:
            try:
                with db.session.begin_nested():
                    result.deleted_codes = PromoCode.remove_many(code_ids)
            except SQLAlchemyError as error:
                logger.warning("Error deleting associated promo codes %s: %s", code_ids, error)
                result.orphaned_code_ids = code_ids

        try:
            db.session.commit()
        except SQLAlchemyError as error:
            db.session.rollback()
            logger.error("Error committing redeemed code delete: %s", error)
            raise DatabaseError(f"Failed to delete redeemed codes: {error}") from error

        self.events.codes_changed.send(self, action="delete-redeemed", ids=code_ids)
        return result
