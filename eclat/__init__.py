from __future__ import annotations

from collections.abc import Mapping

from flask import Flask
from flask_cors import CORS

from .config import Config
from .extensions import db
from .ratings import RatingAggregator, SQLAlchemyRatingStore
from .routes import register_routes


def create_app(config_object=None, rating_aggregator: RatingAggregator | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)

    app.config.from_object(Config)
    app.config.from_envvar("APP_SETTINGS", silent=True)
    if isinstance(config_object, Mapping):
        app.config.from_mapping(config_object)
    elif config_object:
        app.config.from_object(config_object)

    db.init_app(app)

    # Allow the booking front-end to talk to the API
    CORS(app,
         origins=app.config["CORS_ORIGINS"],
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
         methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
    )

    app.extensions["rating_aggregator"] = rating_aggregator or RatingAggregator(SQLAlchemyRatingStore(db))

    register_routes(app)

    return app
