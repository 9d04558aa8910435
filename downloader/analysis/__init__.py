"""
Analysis module classifying materialized trees.
"""

from downloader.analysis.detector import ClassificationResult, LanguageClassifier

__all__ = [
    "ClassificationResult",
    "LanguageClassifier",
]
