"""Run driver: resolve, filter, normalize, submit and store trials."""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import List, Optional, Tuple

from .analysis.gateway import AnalysisClient
from .config.run_config import RunConfig, utc_today
from .core.errors import AnalysisSubmissionError, ConfigurationError, NormalizationError
from .core.models import AnalysisResult, Trial
from .io.base import SurveyRepository
from .trials.eligibility import select_trials
from .trials.normalizer import normalize_trial
from .trials.resolver import resolve_trials
from .utils.logging import get_logger

logger = get_logger(__name__)


class TrialState(Enum):
    """Where a trial ended up during a run."""
    STORED = "stored"
    FAILED_NORMALIZATION = "failed_normalization"
    FAILED_SUBMISSION = "failed_submission"


@dataclass
class TrialOutcome:
    trial: Trial
    state: TrialState
    error: Optional[str] = None
    reused_normalized: bool = False


@dataclass
class RunSummary:
    """Tally of a run; ``processed`` counts trials whose result was stored."""
    campaign_id: str
    target_end_date: date
    resolved: int = 0
    eligible: int = 0
    outcomes: List[TrialOutcome] = field(default_factory=list)

    def _count(self, state: TrialState) -> int:
        return sum(1 for outcome in self.outcomes if outcome.state == state)

    @property
    def processed(self) -> int:
        return self._count(TrialState.STORED)

    @property
    def failed_normalization(self) -> int:
        return self._count(TrialState.FAILED_NORMALIZATION)

    @property
    def failed_submission(self) -> int:
        return self._count(TrialState.FAILED_SUBMISSION)


class TrialProcessor:
    """
    Process the completed trials of one campaign.

    Repository failures propagate and end the run.  Normalization and
    submission failures are logged and only skip the affected trial, which
    stays unprocessed and is picked up again by a later run.
    """

    def __init__(
        self,
        repository: SurveyRepository,
        run_config: RunConfig,
        gateway: Optional[AnalysisClient] = None,
        today: Optional[date] = None,
    ) -> None:
        self.repository = repository
        self.gateway = gateway
        self.run_config = run_config
        self.today = today or utc_today()
        self.target_end_date = run_config.target_end_date(self.today)

    def select(self) -> Tuple[List[Trial], List[Trial]]:
        """Resolve every trial of the campaign and pick the ones to process.

        Returns:
            (resolved trials, trials selected for this run)
        """
        processed_keys = self.repository.fetch_processed_trial_keys()
        records = self.repository.fetch_setup_and_start_surveys(self.run_config.campaign_id)
        trials = resolve_trials(records)
        selected = select_trials(
            trials,
            target_end_date=self.target_end_date,
            processed_keys=processed_keys,
            today=self.today,
            reprocess=self.run_config.reprocess,
            reprocess_all=self.run_config.reprocess_all,
        )
        logger.info(f"{len(selected)} trial(s) will be processed", extra={"resolved": len(trials)})
        return trials, selected

    def process_trial(self, trial: Trial) -> TrialOutcome:
        if self.gateway is None:
            raise ConfigurationError("No analysis service configured for this run")
        context = {"participant_id": trial.participant_id, "setup_survey_id": trial.setup.survey_key}
        logger.info(f"Processing {trial}", extra=context)

        document = self.repository.fetch_normalized_document(
            trial.participant_id, trial.setup.survey_key, start_date=trial.start_date, end_date=trial.end_date
        )
        reused = document is not None
        if document is None:
            records = self.repository.fetch_main_survey_responses(
                trial.participant_id,
                trial.start_date,
                trial.end_date,
                campaign_id=self.run_config.campaign_id,
            )
            try:
                document = normalize_trial(trial, records, self.run_config.campaign_id)
            except NormalizationError as e:
                logger.error(f"Could not normalize trial: {e}", extra=context)
                return TrialOutcome(trial=trial, state=TrialState.FAILED_NORMALIZATION, error=str(e))
            self.repository.store_normalized_document(trial.participant_id, trial.setup.survey_key, document)
        else:
            logger.info("Reusing stored normalized data", extra=context)
        trial.normalized = document

        try:
            payload = self.gateway.submit(document)
        except AnalysisSubmissionError as e:
            logger.error(f"Could not analyze trial: {e}", extra=context)
            return TrialOutcome(trial=trial, state=TrialState.FAILED_SUBMISSION, error=str(e), reused_normalized=reused)

        result = AnalysisResult.from_response(payload, trial.setup.survey_key)
        self.repository.store_analysis_result(trial.participant_id, result)
        logger.info("Stored trial analysis results", extra=context)
        return TrialOutcome(trial=trial, state=TrialState.STORED, reused_normalized=reused)

    def new_summary(self) -> RunSummary:
        return RunSummary(campaign_id=self.run_config.campaign_id, target_end_date=self.target_end_date)

    def run(self, summary: Optional[RunSummary] = None) -> RunSummary:
        """
        Process every selected trial.

        Outcomes are appended to ``summary`` as each trial finishes, so a
        caller that passes its own summary still holds the tally of stored
        trials when a repository error ends the run early.
        """
        logger.info(
            "Processing trials",
            extra={
                "campaign_id": self.run_config.campaign_id,
                "trial_end_date": self.target_end_date.isoformat(),
                "reprocess": self.run_config.reprocess,
                "reprocess_all": self.run_config.reprocess_all,
            },
        )
        if summary is None:
            summary = self.new_summary()
        trials, selected = self.select()
        summary.resolved = len(trials)
        summary.eligible = len(selected)
        for trial in selected:
            summary.outcomes.append(self.process_trial(trial))
        logger.info(
            f"Processed {summary.processed} trials",
            extra={
                "failed_normalization": summary.failed_normalization,
                "failed_submission": summary.failed_submission,
            },
        )
        return summary
