"""
Employee Onboarding Platform
SQLAlchemy database handle shared by all model modules.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
