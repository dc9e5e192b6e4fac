"""
Content selection.

    - selector.py: ContentSelector (exact / pooled / generated / fallback)
    - generator.py: LineGenerator collaborator and structural line rules
    - keywords.py: Keyword, theme and tag-fingerprint helpers
    - defaults.py: Goals, default intentions and fallback lines
"""
from .selector import ContentSelector, SelectedLine, SelectionOutcome, TierResult

__all__ = ["ContentSelector", "SelectedLine", "SelectionOutcome", "TierResult"]
