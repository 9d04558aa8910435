"""
Language classification for materialized trees.

Reports a primary language from the presence of well-known manifest
files at the top of a tree. This is a heuristic: file contents and
extensions are never inspected.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Tuple, Union

logger = logging.getLogger(__name__)

UNKNOWN_LANGUAGE = "unknown"


@dataclass(frozen=True)
class ClassificationResult:
    """Languages detected in a tree and the one considered primary."""
    detected_languages: List[str] = field(default_factory=list)
    primary_language: str = UNKNOWN_LANGUAGE
    confidence: float = 0.0

    def to_dict(self) -> Dict:
        """Convert to dictionary for serialization."""
        return {
            "detected_languages": list(self.detected_languages),
            "primary_language": self.primary_language,
            "confidence": self.confidence,
        }


class LanguageClassifier:
    """
    Classifies a tree from the manifest files in its top directory.

    When more than one ecosystem is present each is scored: its primary
    manifest is worth 2 points and any companion lockfile 1 more.
    """

    MANIFEST_MAP: Dict[str, Tuple[str, ...]] = {
        "javascript": (
            "package.json",
            "package-lock.json",
            "yarn.lock",
            "pnpm-lock.yaml",
        ),
        "php": (
            "composer.json",
            "composer.lock",
        ),
    }

    # language -> (primary manifest, lockfiles adding to its score)
    SCORING: Dict[str, Tuple[str, Tuple[str, ...]]] = {
        "javascript": ("package.json", ("package-lock.json", "yarn.lock")),
        "php": ("composer.json", ("composer.lock",)),
    }

    MANIFEST_POINTS = 2
    LOCKFILE_POINTS = 1

    SINGLE_LANGUAGE_CONFIDENCE = 0.95
    MULTI_LANGUAGE_CONFIDENCE = 0.9
    AMBIGUOUS_CONFIDENCE = 0.5

    # Equal scores resolve to the earliest language listed here
    TIE_BREAK_ORDER: Tuple[str, ...] = ("javascript", "php")

    def classify(self, tree: Union[str, Path]) -> ClassificationResult:
        """
        Classify a materialized tree.

        Args:
            tree: Root directory of the tree. Only its top level is read.

        Returns:
            ClassificationResult; ``unknown`` with confidence 0.0 when no
            manifest is present.
        """
        tree = Path(tree)
        present = {
            name
            for names in self.MANIFEST_MAP.values()
            for name in names
            if (tree / name).is_file()
        }

        detected = [
            language
            for language, names in self.MANIFEST_MAP.items()
            if any(name in present for name in names)
        ]

        if not detected:
            result = ClassificationResult(detected, UNKNOWN_LANGUAGE, 0.0)
        elif len(detected) == 1:
            result = ClassificationResult(
                detected, detected[0], self.SINGLE_LANGUAGE_CONFIDENCE
            )
        else:
            result = self._resolve_multiple(detected, present)

        logger.info(
            f"Language detection for {tree}: detected={result.detected_languages}, "
            f"primary={result.primary_language}, confidence={result.confidence:.2f}"
        )
        return result

    def score(self, language: str, present: set) -> int:
        """Score one language from the manifests present."""
        manifest, lockfiles = self.SCORING[language]
        score = 0
        if manifest in present:
            score += self.MANIFEST_POINTS
        if any(lockfile in present for lockfile in lockfiles):
            score += self.LOCKFILE_POINTS
        return score

    def _resolve_multiple(self, detected: List[str], present: set) -> ClassificationResult:
        scores = {language: self.score(language, present) for language in detected}
        best = max(scores.values())
        leaders = [language for language in detected if scores[language] == best]

        if len(leaders) == 1:
            return ClassificationResult(
                detected, leaders[0], self.MULTI_LANGUAGE_CONFIDENCE
            )

        primary = min(leaders, key=self._tie_rank)
        logger.debug(f"Tied language scores {scores}, choosing {primary}")
        return ClassificationResult(detected, primary, self.AMBIGUOUS_CONFIDENCE)

    def _tie_rank(self, language: str) -> int:
        if language in self.TIE_BREAK_ORDER:
            return self.TIE_BREAK_ORDER.index(language)
        return len(self.TIE_BREAK_ORDER)

    def get_supported_languages(self) -> List[str]:
        """Get the list of languages the classifier can report."""
        return list(self.MANIFEST_MAP.keys())

    def get_manifests_for_language(self, language: str) -> List[str]:
        """Get the manifest filenames that signal a language."""
        return list(self.MANIFEST_MAP.get(language, ()))
