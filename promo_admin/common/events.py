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
Module: events

In-process change notifications shared by the views of one application.
Each application owns its own EventChannel (see create_app), so signals
never leak between apps created in the same process.
"""

from typing import Callable

from blinker import Namespace, Signal


class EventChannel:
    """Typed signals telling sibling views that data changed"""

    def __init__(self):
        self._namespace = Namespace()
        # sent with action=<str>, ids=<list>
        self.codes_changed = self._namespace.signal("codes-changed")
        self.posts_changed = self._namespace.signal("posts-changed")
        # sent with user=<GoogleUser|None>
        self.auth_changed = self._namespace.signal("auth-changed")

    @staticmethod
    def subscribe(signal: Signal, listener: Callable) -> Callable[[], None]:
        """Connects listener (strongly held) and returns a function that disconnects it"""
        signal.connect(listener, weak=False)

        def unsubscribe():
            signal.disconnect(listener)

        return unsubscribe
