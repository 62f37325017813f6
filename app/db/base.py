"""
Import all models here to ensure they are registered with SQLAlchemy.
"""
# Import Base
from app.models.base import Base

# Import all models
from app.models.delivery import DeliveryRecord
from app.models.student import Student, Result

# This allows Base.metadata.create_all to see every table
