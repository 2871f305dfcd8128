"""
Field Operations ERP — SQLAlchemy models package.

The shared ``db`` handle lives here so every model module (and the app
factory) imports it from one place:

    from fieldops.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
