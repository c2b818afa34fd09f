# Overview: Flask extension instances and the registry for external service adapters.

from __future__ import annotations

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()

COURIER_EXTENSION_KEY = "tierstock.courier"
POS_EXTENSION_KEY = "tierstock.pos"


def register_adapters(app, *, courier=None, pos=None) -> None:
    """
    Attach courier/POS adapters to the app.

    Services never construct adapters themselves; they resolve whatever is
    registered here so tests can swap in fakes.
    """
    if courier is not None:
        app.extensions[COURIER_EXTENSION_KEY] = courier
    if pos is not None:
        app.extensions[POS_EXTENSION_KEY] = pos


def get_courier():
    courier = current_app.extensions.get(COURIER_EXTENSION_KEY)
    if courier is None:
        raise RuntimeError("No courier adapter registered")
    return courier


def get_pos():
    pos = current_app.extensions.get(POS_EXTENSION_KEY)
    if pos is None:
        raise RuntimeError("No POS adapter registered")
    return pos
