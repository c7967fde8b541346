from .categorizer import (
    CATEGORY_RULES,
    HierarchicalCategorizer,
    categorize_remark,
    coerce_category,
    refinement_candidates,
)

__all__ = [
    "CATEGORY_RULES",
    "HierarchicalCategorizer",
    "categorize_remark",
    "coerce_category",
    "refinement_candidates",
]
