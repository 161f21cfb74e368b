from stockcast.learning.accuracy import AccuracyAggregator, AccuracyReport
from stockcast.learning.calibration import CalibrationEngine, CalibrationReport
from stockcast.learning.evaluator import EvaluationEngine, PassResult

__all__ = [
    "AccuracyAggregator",
    "AccuracyReport",
    "CalibrationEngine",
    "CalibrationReport",
    "EvaluationEngine",
    "PassResult",
]
