"""
Database base configuration
"""
from sqlalchemy.orm import declarative_base

# Create declarative base for SQLAlchemy models
Base = declarative_base()


# Import all models here to ensure they are registered with SQLAlchemy
# This is important for create_all() and migrations to see every table
def import_models():
    """Import all models to register them with SQLAlchemy"""
    from screenings.models import event  # noqa: F401
    from screenings.models import rsvp  # noqa: F401
    from screenings.models import payment  # noqa: F401
    from screenings.models import stripe_event  # noqa: F401
