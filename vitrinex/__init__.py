from collections.abc import Mapping

from flask import Flask
from flask_cors import CORS

from . import notifications
from .config import Config
from .errors import register_error_handlers
from .extensions import db
from .routes import register_routes


def create_app(config_object=None):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)

    if isinstance(config_object, Mapping):
        app.config.from_mapping(config_object)
    elif config_object is not None:
        app.config.from_object(config_object)
    else:
        app.config.from_envvar("APP_SETTINGS", silent=True)

    app.logger.setLevel(app.config["LOG_LEVEL"])

    db.init_app(app)

    origins = [origin.strip() for origin in app.config["CORS_ORIGINS"].split(",") if origin.strip()]
    CORS(app,
         origins=origins or ["*"],
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization", "If-None-Match"],
         expose_headers=["ETag"],
         methods=["GET", "POST", "OPTIONS"]
    )

    register_error_handlers(app)
    register_routes(app)
    notifications.init_app(app)

    return app
