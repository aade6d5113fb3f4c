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
Optimistic list state for the admin UI

Each item of a list is SYNCED with the store, PENDING while a local change
awaits confirmation, or REVERTING while the list is re-fetched after the
change failed. Reverting always re-reads the whole list; it never patches
items back by hand.
"""

import enum
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional


class SyncState(enum.Enum):
    """Lifecycle of one list item"""

    SYNCED = "synced"
    PENDING = "pending"
    REVERTING = "reverting"


@dataclass
class ListItem:
    """A row of the list and its sync state"""

    key: str
    data: dict
    state: SyncState = SyncState.SYNCED


class OptimisticList:
    """Rows fetched by `fetch`, updated optimistically"""

    def __init__(self, fetch: Callable[[], List[dict]], key: str = "id"):
        self._fetch = fetch
        self._key = key
        self._items: Dict[str, ListItem] = {}

    def refresh(self) -> "OptimisticList":
        """Replaces every item with the canonical rows"""
        self._items = {
            str(row[self._key]): ListItem(str(row[self._key]), dict(row)) for row in self._fetch()
        }
        return self

    def get(self, key: str) -> Optional[ListItem]:
        """Returns the item or None"""
        return self._items.get(str(key))

    def rows(self) -> List[dict]:
        """Current (possibly optimistic) rows in list order"""
        return [item.data for item in self._items.values()]

    def apply(self, key: str, changes: dict, commit: Callable):
        """Shows changes immediately, then confirms them with commit()"""
        item = self._require(key)
        item.data = {**item.data, **changes}
        item.state = SyncState.PENDING
        return self._settle(item, commit)

    def remove(self, key: str, commit: Callable):
        """Drops the item immediately, then confirms the removal with commit()"""
        item = self._require(key)
        item.state = SyncState.PENDING
        del self._items[item.key]
        return self._settle(item, commit)

    def _require(self, key: str) -> ListItem:
        item = self.get(key)
        if item is None:
            raise KeyError(key)
        if item.state is not SyncState.SYNCED:
            raise RuntimeError(f"Item {key} has a change in flight")
        return item

    def _settle(self, item: ListItem, commit: Callable):
        try:
            outcome = commit()
        except Exception:
            item.state = SyncState.REVERTING
            self.refresh()
            raise
        item.state = SyncState.SYNCED
        return outcome
