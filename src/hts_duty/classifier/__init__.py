"""Classifier module."""
from .duty_classifier import DutyClassifier

__all__ = ['DutyClassifier']
