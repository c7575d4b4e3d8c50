"""
PLM Gate Workflow
SQLAlchemy extension instance shared by every model module.

Import ``db`` from here; model modules register themselves on import
(see ``plm.create_app``).
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
