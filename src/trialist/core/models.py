"""Core domain models for survey records, trials and normalized documents."""

import json
from datetime import date
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

from .errors import MalformedSurveyError
from .lookups import Regimen, SurveyKind, number_of_cycles, regimen_duration_days, total_trial_days

# Prompt ids used by the Trialist surveys
REGIMEN_DURATION_PROMPT = "regimenDuration"
NUMBER_OF_CYCLES_PROMPT = "numberComparisonCycles"
REGIMEN_A_PROMPT = "regimenA"
REGIMEN_B_PROMPT = "regimenB"
CYCLE_PAIRS_PROMPT = "randomAsText"
COGNITIVE_FUNCTION_PROMPT = "cognitiveFunction"
START_DATE_PROMPT = "startPrompt"
CURRENT_REGIMEN_PROMPT = "currentRegimen"
NOTES_PROMPT = "notesAboutToday"

Scalar = Union[int, float, str, List[Any], None]


class PromptResponse(BaseModel):
    """One answered prompt within a survey response."""
    model_config = ConfigDict(frozen=True)

    prompt_id: str
    value: Scalar = None


class SurveyRecord(BaseModel):
    """A raw survey response as read from the repository."""
    model_config = ConfigDict(frozen=True)

    participant_id: str
    kind: SurveyKind
    survey_key: str = Field(..., description="Unique identifier of the survey response")
    epoch_millis: int
    timezone: Optional[str] = None
    responses: List[PromptResponse] = Field(default_factory=list)

    def find_value(self, prompt_id: str) -> Optional[Scalar]:
        for response in self.responses:
            if response.prompt_id == prompt_id:
                return response.value
        return None

    def value_for(self, prompt_id: str) -> Scalar:
        """Value of a required prompt; raises MalformedSurveyError if absent."""
        for response in self.responses:
            if response.prompt_id == prompt_id:
                return response.value
        raise MalformedSurveyError(
            f"Survey response {self.survey_key} has no response for prompt {prompt_id}",
            survey_key=self.survey_key,
            participant_id=self.participant_id,
        )

    def int_value_for(self, prompt_id: str) -> int:
        value = self.value_for(prompt_id)
        try:
            return coerce_int(value)
        except (TypeError, ValueError) as exc:
            raise MalformedSurveyError(
                f"Prompt {prompt_id} in survey response {self.survey_key} is not an integer: {value!r}",
                survey_key=self.survey_key,
                participant_id=self.participant_id,
            ) from exc


def coerce_int(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError(f"boolean is not a prompt key: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return int(str(value).strip())


def _parse_option_keys(value: Scalar) -> Optional[List[int]]:
    """Multi-choice answers arrive as a JSON array, usually encoded as a string."""
    if value is None:
        return None
    try:
        parsed = json.loads(value) if isinstance(value, str) else value
        if isinstance(parsed, int) and not isinstance(parsed, bool):
            parsed = [parsed]
        if not isinstance(parsed, list):
            return None
        return [coerce_int(item) for item in parsed]
    except (TypeError, ValueError):
        return None


class SetupConfig(BaseModel):
    """Trial configuration captured by a participant's setup survey."""

    survey_key: str
    regimen_duration_key: int
    number_of_cycles_key: int
    regimen_a_keys: Optional[List[int]] = None
    regimen_b_keys: Optional[List[int]] = None
    cycle_ab_pairs: Optional[str] = None
    cognitive_function_prompt_key: Optional[str] = None

    @classmethod
    def from_record(cls, record: SurveyRecord) -> "SetupConfig":
        """Build the config from a setup survey.

        The duration and cycle prompts are required and validated here.  The
        regimen choices are only checked when the trial is normalized.
        """
        duration_key = record.int_value_for(REGIMEN_DURATION_PROMPT)
        cycles_key = record.int_value_for(NUMBER_OF_CYCLES_PROMPT)
        # Fail fast on keys outside the lookup tables
        regimen_duration_days(duration_key)
        number_of_cycles(cycles_key)
        pairs = record.find_value(CYCLE_PAIRS_PROMPT)
        cognitive = record.find_value(COGNITIVE_FUNCTION_PROMPT)
        return cls(
            survey_key=record.survey_key,
            regimen_duration_key=duration_key,
            number_of_cycles_key=cycles_key,
            regimen_a_keys=_parse_option_keys(record.find_value(REGIMEN_A_PROMPT)),
            regimen_b_keys=_parse_option_keys(record.find_value(REGIMEN_B_PROMPT)),
            cycle_ab_pairs=None if pairs is None else str(pairs),
            cognitive_function_prompt_key=None if cognitive is None else str(cognitive),
        )

    @property
    def regimen_duration(self) -> int:
        return regimen_duration_days(self.regimen_duration_key)

    @property
    def number_of_cycles(self) -> int:
        return number_of_cycles(self.number_of_cycles_key)

    @property
    def total_days(self) -> int:
        return total_trial_days(self.regimen_duration_key, self.number_of_cycles_key)


class TrialKey(BaseModel):
    """Natural key of a trial: the participant and their setup survey."""
    model_config = ConfigDict(frozen=True)

    participant_id: str
    setup_survey_id: str


class TrialMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    regimen_a: List[str]
    regimen_b: List[str]
    trial_start_date: date
    trial_end_date: date
    regimen_duration: int
    number_of_cycles: int
    cycle_ab_pairs: str
    cognitive_function_prompt_key: Optional[str] = Field(None, alias="cognitiveFunctionPromptKey")


class DataPoint(BaseModel):
    """One daily report; prompt values are carried as extra fields."""
    model_config = ConfigDict(extra="allow")

    cycle: int = Field(..., ge=1)
    timestamp: str
    regimen: Optional[Regimen] = None


class NormalizedDocument(BaseModel):
    """Per-trial record consumed by the analysis service."""

    metadata: TrialMetadata
    data: List[DataPoint] = Field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Trial(BaseModel):
    """A participant's resolved trial window."""

    participant_id: str
    start_date: date
    end_date: date
    setup: SetupConfig
    normalized: Optional[NormalizedDocument] = None

    @property
    def key(self) -> TrialKey:
        return TrialKey(participant_id=self.participant_id, setup_survey_id=self.setup.survey_key)

    def __str__(self) -> str:
        return (
            f"Trial(participant={self.participant_id}, setup={self.setup.survey_key}, "
            f"start={self.start_date.isoformat()}, end={self.end_date.isoformat()})"
        )


class AnalysisResult(BaseModel):
    """Analysis service output tagged with the setup survey it belongs to."""
    model_config = ConfigDict(extra="allow")

    setup_survey_id: str

    @classmethod
    def from_response(cls, payload: Dict[str, Any], setup_survey_id: str) -> "AnalysisResult":
        return cls.model_validate({**payload, "setup_survey_id": setup_survey_id})

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
