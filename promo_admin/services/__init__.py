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
Package: services

The services of one application, wired together by create_app().
"""

from dataclasses import dataclass

from flask import current_app

from promo_admin.common.events import EventChannel
from promo_admin.services.auth import AuthGate
from promo_admin.services.blog import BlogService
from promo_admin.services.codes import CodeService
from promo_admin.services.redemptions import RedemptionService


@dataclass
class Services:
    """Everything the presentation layer talks to"""

    gate: AuthGate
    events: EventChannel
    codes: CodeService
    redemptions: RedemptionService
    blog: BlogService

    @classmethod
    def build(cls, app) -> "Services":
        """Constructs the services for app and registers them on it"""
        events = EventChannel()
        gate = AuthGate(app, events)
        services = cls(
            gate=gate,
            events=events,
            codes=CodeService(gate, events, unit_price=app.config["MONTHLY_REVENUE_UNIT_PRICE"]),
            redemptions=RedemptionService(gate, events),
            blog=BlogService(gate, events),
        )
        app.extensions["promo_admin"] = services
        return services


def get_services() -> Services:
    """Services of the current application"""
    return current_app.extensions["promo_admin"]
