# training/__init__.py
# Training-data capture for agent decisions.

from .sink import KVTrainingSink, TrainingExample, TrainingInput, TrainingSink

__all__ = ["KVTrainingSink", "TrainingExample", "TrainingInput", "TrainingSink"]
