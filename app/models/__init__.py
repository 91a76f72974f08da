from app import db  # noqa: F401 - imported for model imports

from .match import Match
from .prediction import Prediction
from .user import User

__all__ = [
    "User",
    "Match",
    "Prediction",
]
