"""Select the completed trials a run should process."""

from datetime import date, timedelta
from typing import AbstractSet, Iterable, List

from ..core.models import Trial, TrialKey


def select_trials(
    trials: Iterable[Trial],
    target_end_date: date,
    processed_keys: AbstractSet[TrialKey],
    today: date,
    reprocess: bool = False,
    reprocess_all: bool = False,
) -> List[Trial]:
    """
    Filter resolved trials down to the ones to process in this run.

    1. Only trials that ended yesterday or earlier are eligible.
    2. With ``reprocess_all`` every eligible trial is kept, otherwise only
       those ending on ``target_end_date``.
    3. Unless reprocessing, trials with a stored result are dropped.

    Args:
        trials: Resolved trials
        target_end_date: End date to match when not reprocessing everything
        processed_keys: Natural keys of trials that already have a result
        today: Current UTC date
        reprocess: Keep trials that already have a result
        reprocess_all: Keep every completed trial regardless of end date

    Returns:
        The trials to process, in input order
    """
    yesterday = today - timedelta(days=1)
    selected: List[Trial] = []
    for trial in trials:
        if trial.end_date > yesterday:
            continue
        if not reprocess_all and trial.end_date != target_end_date:
            continue
        if not (reprocess or reprocess_all) and trial.key in processed_keys:
            continue
        selected.append(trial)
    return selected
