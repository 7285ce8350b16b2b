from .user import User
from .submission import Submission
from .analysis_outcome import AnalysisOutcome, CodeError
from .weak_area import WeakAreaRecord, WeakAreaObservation
from .practice import PracticeProblem, PracticeAttempt
from .growth import GrowthState, GrowthScoreSnapshot
from .queue_item import AnalysisQueueItem

__all__ = [
    'User',
    'Submission',
    'AnalysisOutcome',
    'CodeError',
    'WeakAreaRecord',
    'WeakAreaObservation',
    'PracticeProblem',
    'PracticeAttempt',
    'GrowthState',
    'GrowthScoreSnapshot',
    'AnalysisQueueItem',
]
