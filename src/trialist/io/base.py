"""Base interface for survey repositories."""

from abc import ABC, abstractmethod
from datetime import date
from typing import List, Optional, Set

from ..core.models import AnalysisResult, NormalizedDocument, SurveyRecord, TrialKey


class SurveyRepository(ABC):
    """Source of survey responses and sink for trial outputs."""

    @abstractmethod
    def fetch_setup_and_start_surveys(self, campaign_id: str) -> List[SurveyRecord]:
        """
        Setup and start survey responses for a campaign.

        Args:
            campaign_id: Campaign identifier

        Returns:
            Records ordered by participant, then by submission time
        """
        raise NotImplementedError

    @abstractmethod
    def fetch_main_survey_responses(
        self,
        participant_id: str,
        start_date: date,
        end_date: date,
        campaign_id: Optional[str] = None,
    ) -> List[SurveyRecord]:
        """
        Daily survey responses submitted between two UTC dates, inclusive.

        Returns:
            One record per answered prompt, ordered by submission time
        """
        raise NotImplementedError

    @abstractmethod
    def fetch_processed_trial_keys(self) -> Set[TrialKey]:
        """Natural keys of every trial with a stored analysis result."""
        raise NotImplementedError

    @abstractmethod
    def fetch_normalized_document(
        self,
        participant_id: str,
        setup_survey_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Optional[NormalizedDocument]:
        """
        Most recently stored normalized document for a trial, if any.

        When ``start_date`` and ``end_date`` are given, only a document
        covering exactly that trial window is returned.
        """
        raise NotImplementedError

    @abstractmethod
    def store_normalized_document(
        self, participant_id: str, setup_survey_id: str, document: NormalizedDocument
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    def store_analysis_result(self, participant_id: str, result: AnalysisResult) -> None:
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        """Clean up resources."""
        raise NotImplementedError

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"
