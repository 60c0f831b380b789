"""Duplicate detection: exact tax-id keys and fuzzy name clusters.

Submodules:
- normalizer: canonical identifier and name forms
- exact: grouping by normalized tax identifier
- similarity: symmetric 0-100 name likeness (RapidFuzz)
- clustering: similarity graph and connected components
"""

from entity_consolidation.detection.clustering import FuzzyClusterBuilder, validate_threshold
from entity_consolidation.detection.exact import find_exact_groups
from entity_consolidation.detection.groups import DuplicateGroup
from entity_consolidation.detection.normalizer import normalize_identifier, normalize_name
from entity_consolidation.detection.similarity import NameSimilarityScorer

__all__ = [
    "DuplicateGroup",
    "FuzzyClusterBuilder",
    "NameSimilarityScorer",
    "find_exact_groups",
    "normalize_identifier",
    "normalize_name",
    "validate_threshold",
]
