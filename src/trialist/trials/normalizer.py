"""Turn a trial's daily survey responses into a normalized document."""

from itertools import groupby
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from ..core.dates import days_between, epoch_millis_to_utc_date, format_timestamp, parse_timezone
from ..core.errors import DataIntegrityError, NormalizationError
from ..core.lookups import is_mock_campaign, regimen_for_key, regimen_label
from ..core.models import (
    CURRENT_REGIMEN_PROMPT,
    NOTES_PROMPT,
    DataPoint,
    NormalizedDocument,
    PromptResponse,
    SurveyRecord,
    Trial,
    TrialMetadata,
    coerce_int,
)
from ..utils.logging import get_logger

logger = get_logger(__name__)


def group_responses(records: Iterable[SurveyRecord]) -> List[SurveyRecord]:
    """
    Merge consecutive records sharing a survey key into one submission.

    The repository delivers one record per answered prompt.  Order is kept;
    the first record of each group supplies the submission time and timezone.
    """
    submissions: List[SurveyRecord] = []
    for _, group in groupby(records, key=lambda r: r.survey_key):
        parts = list(group)
        responses: List[PromptResponse] = [resp for part in parts for resp in part.responses]
        submissions.append(parts[0].model_copy(update={"responses": responses}))
    return submissions


def regimen_labels(keys: Optional[List[int]], campaign_id: str, prompt_id: str) -> List[str]:
    if keys is None:
        raise NormalizationError(f"Setup survey has no readable option list for {prompt_id}")
    mock = is_mock_campaign(campaign_id)
    return [regimen_label(key, mock) for key in keys]


def build_metadata(trial: Trial, campaign_id: str) -> TrialMetadata:
    setup = trial.setup
    if setup.cycle_ab_pairs is None:
        raise NormalizationError(f"Setup survey {setup.survey_key} has no cycle pairing")
    return TrialMetadata(
        regimen_a=regimen_labels(setup.regimen_a_keys, campaign_id, "regimenA"),
        regimen_b=regimen_labels(setup.regimen_b_keys, campaign_id, "regimenB"),
        trial_start_date=trial.start_date,
        trial_end_date=trial.end_date,
        regimen_duration=setup.regimen_duration,
        number_of_cycles=setup.number_of_cycles,
        cycle_ab_pairs=setup.cycle_ab_pairs,
        cognitive_function_prompt_key=setup.cognitive_function_prompt_key,
    )


def build_data_point(submission: SurveyRecord, trial: Trial) -> Optional[DataPoint]:
    """Data point for one daily submission, or None if it lies outside the trial."""
    tz = parse_timezone(submission.timezone)
    if tz is None:
        raise NormalizationError(
            f"Survey response {submission.survey_key} has an unknown timezone: {submission.timezone!r}"
        )

    survey_date = epoch_millis_to_utc_date(submission.epoch_millis)
    if not trial.start_date <= survey_date <= trial.end_date:
        logger.warning(
            "Ignoring survey response outside the trial window",
            extra={"participant_id": trial.participant_id, "survey_key": submission.survey_key},
        )
        return None

    cycle_length = 2 * trial.setup.regimen_duration
    point: Dict[str, Any] = {
        "cycle": days_between(trial.start_date, survey_date) // cycle_length + 1,
        "timestamp": format_timestamp(submission.epoch_millis, tz),
    }
    for response in submission.responses:
        if response.prompt_id == NOTES_PROMPT:
            continue
        try:
            value = coerce_int(response.value)
        except (TypeError, ValueError) as exc:
            raise NormalizationError(
                f"Prompt {response.prompt_id} in survey response {submission.survey_key} "
                f"is not numeric: {response.value!r}"
            ) from exc
        if response.prompt_id == CURRENT_REGIMEN_PROMPT:
            point["regimen"] = regimen_for_key(value)
        else:
            point[response.prompt_id] = value
    return DataPoint.model_validate(point)


def normalize_trial(trial: Trial, records: Iterable[SurveyRecord], campaign_id: str) -> NormalizedDocument:
    """
    Build the normalized document for a trial.

    Args:
        trial: Resolved trial
        records: ``main`` survey records inside the trial window, in submission order
        campaign_id: Campaign identifier, used to pick medication or genre labels

    Returns:
        NormalizedDocument with metadata and one data point per submission

    Raises:
        NormalizationError: The setup or daily data cannot be normalized
    """
    try:
        metadata = build_metadata(trial, campaign_id)
        submissions = group_responses(records)
        data: List[DataPoint] = []
        for submission in submissions:
            point = build_data_point(submission, trial)
            if point is not None:
                data.append(point)
        document = NormalizedDocument(metadata=metadata, data=data)
    except NormalizationError:
        raise
    except (DataIntegrityError, ValidationError) as exc:
        raise NormalizationError(f"Could not normalize {trial}: {exc}") from exc
    logger.info(
        "Normalized trial",
        extra={
            "participant_id": trial.participant_id,
            "setup_survey_id": trial.setup.survey_key,
            "submissions": len(submissions),
            "data_points": len(data),
        },
    )
    return document
