"""Pair setup and start surveys into trial windows.

Records arrive ordered by participant and then by time.  The scan holds at
most one setup survey at a time:

- a setup survey for a new participant replaces the held survey;
- a start survey for the held participant produces a trial;
- any other survey for a different participant empties the cursor, so an
  incomplete sequence never produces a trial.

A start survey with an unknown timezone is skipped and the cursor is
kept, so a later start survey for the same setup can still succeed.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable, List, Optional, Tuple, Union

from ..core.dates import parse_local_datetime, parse_timezone, to_utc_date
from ..core.errors import MalformedSurveyError
from ..core.lookups import SurveyKind
from ..core.models import START_DATE_PROMPT, SetupConfig, SurveyRecord, Trial
from ..utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Empty:
    """No setup survey is held."""


@dataclass(frozen=True)
class HoldingSetup:
    """A participant's setup survey waiting for its start survey."""
    participant_id: str
    setup_record: SurveyRecord


ScanState = Union[Empty, HoldingSetup]

EMPTY = Empty()


def build_trial(setup_record: SurveyRecord, start_record: SurveyRecord) -> Optional[Trial]:
    """Compute the trial window for a setup/start pair.

    Returns None when the start survey's timezone cannot be resolved.
    Raises MalformedSurveyError or UnknownKeyError for unusable payloads.
    """
    tz = parse_timezone(start_record.timezone)
    if tz is None:
        logger.warning(
            "Skipping start survey with an unknown timezone",
            extra={
                "participant_id": start_record.participant_id,
                "survey_key": start_record.survey_key,
                "timezone": start_record.timezone,
            },
        )
        return None

    try:
        setup = SetupConfig.from_record(setup_record)
    except MalformedSurveyError:
        logger.error(
            "Malformed setup survey",
            extra={"participant_id": setup_record.participant_id, "survey_key": setup_record.survey_key},
        )
        raise

    raw_start = start_record.value_for(START_DATE_PROMPT)
    started_at = parse_local_datetime(None if raw_start is None else str(raw_start), tz)
    if started_at is None:
        raise MalformedSurveyError(
            f"Start survey {start_record.survey_key} has an unreadable start date: {raw_start!r}",
            survey_key=start_record.survey_key,
            participant_id=start_record.participant_id,
        )

    start_date = to_utc_date(started_at)
    return Trial(
        participant_id=start_record.participant_id,
        start_date=start_date,
        end_date=start_date + timedelta(days=setup.total_days),
        setup=setup,
    )


def step(state: ScanState, record: SurveyRecord) -> Tuple[ScanState, Optional[Trial]]:
    """Advance the scan by one record, returning the new state and any trial produced."""
    if isinstance(state, HoldingSetup) and record.participant_id == state.participant_id:
        if record.kind == SurveyKind.START:
            return state, build_trial(state.setup_record, record)
        return state, None

    if record.kind == SurveyKind.SETUP:
        return HoldingSetup(participant_id=record.participant_id, setup_record=record), None

    if isinstance(state, HoldingSetup):
        logger.info(
            "Abandoning incomplete survey sequence",
            extra={"participant_id": state.participant_id, "next_participant_id": record.participant_id},
        )
    return EMPTY, None


def resolve_trials(records: Iterable[SurveyRecord]) -> List[Trial]:
    """Resolve every setup/start pair in ``records`` into a Trial."""
    state: ScanState = EMPTY
    trials: List[Trial] = []
    for record in records:
        state, trial = step(state, record)
        if trial is not None:
            logger.debug(str(trial))
            trials.append(trial)
    logger.info("Resolved trials", extra={"trial_count": len(trials)})
    return trials
