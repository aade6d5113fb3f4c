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
Code Management Service

Bulk creation, filtered listing, deletion and statistics of promo codes.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from promo_admin.common.retry import with_retry
from promo_admin.models import (
    CODE_TYPES,
    REGIONS,
    DatabaseError,
    PromoCode,
    PromoCodeRequest,
    as_utc,
    db,
    normalize_choice,
)

logger = logging.getLogger("promo_admin")


@dataclass
class AddResult:
    """Rows inserted by a bulk add and the per-item error messages"""

    success: List[PromoCode] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def serialize(self) -> dict:
        """Serializes the result for JSON responses"""
        return {
            "success": [code.serialize() for code in self.success],
            "errors": list(self.errors),
        }


def parse_codes(text: str) -> List[str]:
    """Splits a textarea submission into one code per non-blank line"""
    return [line.strip() for line in (text or "").splitlines() if line.strip()]


class CodeService:
    """Operations over the promo_codes table"""

    def __init__(self, gate, events, unit_price: int = 15):
        self.gate = gate
        self.events = events
        self.unit_price = unit_price

    @with_retry()
    def add_promo_codes(self, codes: Iterable[str], code_type: str, region: str) -> AddResult:
        """
        Inserts the given codes in one batch

        Empty entries, repeats within the submission (the first one wins) and
        codes already stored are reported in `errors` and skipped.
        """
        self.gate.ensure_authenticated()
        code_type = normalize_choice(code_type, CODE_TYPES, "type")
        region = normalize_choice(region, REGIONS, "region")
        candidates = [str(code if code is not None else "").strip() for code in codes]

        result = AddResult()
        try:
            existing = PromoCode.existing_codes({code for code in candidates if code})
        except SQLAlchemyError as error:
            db.session.rollback()
            logger.error("Error checking existing codes: %s", error)
            raise DatabaseError(f"Failed to check existing codes: {error}") from error

        seen = set()
        rows = []
        for code in candidates:
            if not code:
                result.errors.append("Empty code found")
            elif code in existing:
                result.errors.append(f"Code {code} already exists")
            elif code in seen:
                result.errors.append(f"Duplicate code {code} in submission")
            else:
                seen.add(code)
                rows.append(PromoCode(code=code, type=code_type, region=region, is_used=False))

        if not rows:
            logger.warning("No new promo codes to insert (%d errors)", len(result.errors))
            return result

        logger.info("Inserting %d promo codes type=%s region=%s", len(rows), code_type, region)
        try:
            db.session.add_all(rows)
            db.session.commit()
        except SQLAlchemyError as error:
            db.session.rollback()
            logger.error("Database insert error: %s", error)
            raise DatabaseError(f"Database error: {error}") from error

        result.success = rows
        self.events.codes_changed.send(self, action="add", ids=[row.id for row in rows])
        return result

    @with_retry()
    def get_promo_codes(
        self,
        code_type: Optional[str] = None,
        region: Optional[str] = None,
        is_used: Optional[bool] = None,
    ) -> List[PromoCode]:
        """Returns codes matching every supplied filter, newest first"""
        self.gate.ensure_authenticated()
        if code_type:
            code_type = normalize_choice(code_type, CODE_TYPES, "type")
        if region:
            region = normalize_choice(region, REGIONS, "region")
        try:
            return PromoCode.find_filtered(code_type, region, is_used)
        except SQLAlchemyError as error:
            db.session.rollback()
            logger.error("Error fetching promo codes: %s", error)
            raise DatabaseError(f"Failed to fetch promo codes: {error}") from error

    @with_retry()
    def delete_promo_codes(self, ids: Iterable[str]) -> int:
        """Deletes codes by id; unknown ids are ignored"""
        self.gate.ensure_authenticated()
        ids = [str(i) for i in ids]
        logger.info("Deleting %d promo codes", len(ids))
        try:
            deleted = PromoCode.remove_many(ids)
            db.session.commit()
        except SQLAlchemyError as error:
            db.session.rollback()
            logger.error("Error deleting promo codes: %s", error)
            raise DatabaseError(f"Failed to delete promo codes: {error}") from error

        self.events.codes_changed.send(self, action="delete", ids=ids)
        return deleted

    @with_retry()
    def get_promo_code_stats(self, now: Optional[datetime] = None) -> dict:
        """
        Aggregates code counts and redemption revenue

        Both table scans must succeed; no partial statistics are returned.
        Monthly revenue counts verified requests created in the calendar
        month of `now` (UTC) at `unit_price` each.
        """
        self.gate.ensure_authenticated()
        now = as_utc(now) if now else datetime.now(timezone.utc)
        try:
            code_rows = PromoCode.stats_rows()
            request_rows = PromoCodeRequest.stats_rows()
        except SQLAlchemyError as error:
            db.session.rollback()
            logger.error("Error fetching stats: %s", error)
            raise DatabaseError(f"Failed to fetch statistics: {error}") from error

        stats = {
            "total": 0,
            "used": 0,
            "available": 0,
            "verified": 0,
            "monthly_revenue": 0,
            "by_type": {},
            "by_region": {},
        }
        for code_type, region, is_used in code_rows:
            stats["total"] += 1
            if is_used:
                stats["used"] += 1
            else:
                stats["available"] += 1
            stats["by_type"][code_type] = stats["by_type"].get(code_type, 0) + 1
            stats["by_region"][region] = stats["by_region"].get(region, 0) + 1

        this_month = 0
        for verified, created_at in request_rows:
            if not verified:
                continue
            stats["verified"] += 1
            created_at = as_utc(created_at)
            if created_at and (created_at.year, created_at.month) == (now.year, now.month):
                this_month += 1
        stats["monthly_revenue"] = this_month * self.unit_price
        return stats
