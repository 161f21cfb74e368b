from stockcast.registry.db import Database
from stockcast.registry.queries import PredictionRegistry

__all__ = ["Database", "PredictionRegistry"]
