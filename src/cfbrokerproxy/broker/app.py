"""Flask application exposing a BrokerProxy over the Open Service Broker API."""

import logging

from flask import Flask
from openbrokerapi import api
from openbrokerapi.service_broker import ServiceBroker

# openbrokerapi logs through a stdlib logger; it shares our structlog handlers
API_LOGGER_NAME = "cfbrokerproxy.api"


def create_app(service_broker: ServiceBroker, username: str, password: str) -> Flask:
    """
    Build the WSGI application.

    Routing, basic authentication, API version checks and JSON marshaling
    are handled by the openbrokerapi blueprint.

    Args:
        service_broker: Handler implementation (BrokerProxy in production)
        username: Broker basic-auth username
        password: Broker basic-auth password
    """
    app = Flask(__name__)
    blueprint = api.get_blueprint(
        service_broker,
        api.BrokerCredentials(username, password),
        logging.getLogger(API_LOGGER_NAME),
    )
    app.register_blueprint(blueprint)
    return app
