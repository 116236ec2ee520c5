from .learning_store import LearningStore, calculate_confidence

__all__ = ["LearningStore", "calculate_confidence"]
