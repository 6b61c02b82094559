"""
Contains base class for import workflows
"""
from abc import ABC, abstractmethod
from typing import List

from core.entities import ImportRunResult


class ImportWorkflow(ABC):
    """
    Orchestrates fetch → filter → extract → optimize → assess → rewrite → persist
    for a single category.
    """

    @property
    @abstractmethod
    def categories(self) -> List[str]:
        """Categories this workflow can import."""
        raise NotImplementedError

    @abstractmethod
    async def run(self, category: str, max_articles: int) -> ImportRunResult:
        """
        Import up to max_articles new articles for a category.
        Item failures are counted in the result, never raised.
        """
        raise NotImplementedError
