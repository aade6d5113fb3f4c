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
Package: promo_admin
Create and configure the Flask app, logging, database and services
"""

import sys
from typing import Mapping, Optional

from flask import Flask

from promo_admin import config
from promo_admin.common import log_handlers
from promo_admin.models import db
from promo_admin.services import Services


def create_app(overrides: Optional[Mapping] = None) -> Flask:
    """Builds the application: config, database, services and blueprints"""
    app = Flask(__name__)
    app.config.from_object(config)
    if overrides:
        app.config.update(overrides)

    db.init_app(app)
    services = Services.build(app)

    # pylint: disable=import-outside-toplevel
    from promo_admin.routes import api
    from promo_admin.ui import ui_bp
    from promo_admin.common.error_handlers import errors
    from promo_admin.common.cli_commands import register_cli

    app.register_blueprint(api)
    app.register_blueprint(ui_bp)
    app.register_blueprint(errors)
    register_cli(app)

    # sibling views learn about changes through the channel; log them here
    services.events.subscribe(
        services.events.codes_changed,
        lambda sender, **extra: app.logger.info("Promo codes changed: %s", extra.get("action")),
    )
    services.events.subscribe(
        services.events.posts_changed,
        lambda sender, **extra: app.logger.info("Blog posts changed: %s", extra.get("action")),
    )

    with app.app_context():
        try:
            db.create_all()
        except Exception as err:  # pylint: disable=broad-except
            app.logger.critical("%s: Cannot continue", err)
            sys.exit(4)

    log_handlers.init_logging(app, "gunicorn.error")

    app.logger.info(70 * "*")
    app.logger.info("  P R O M O   A D M I N   S E R V I C E   I N I T  ".center(70, "*"))
    app.logger.info(70 * "*")

    return app
