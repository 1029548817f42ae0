"""Per-run processing parameters."""

import json
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..core.errors import ConfigurationError
from .settings import settings


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


class RunConfig(BaseModel):
    """Which completed trials a run should process.

    Accepts the dashed keys used on the command line (``reprocess-all``,
    ``trial-end-date``, ``campaign-id``) as well as the field names.  When
    ``trial_end_date`` is omitted, trials that ended yesterday are processed.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    reprocess: bool = Field(False, description="Also process trials that already have a result")
    reprocess_all: bool = Field(False, alias="reprocess-all", description="Process every completed trial")
    trial_end_date: Optional[date] = Field(None, alias="trial-end-date")
    campaign_id: str = Field(default_factory=lambda: settings.default_campaign_id, alias="campaign-id")

    @field_validator("campaign_id")
    @classmethod
    def _require_campaign(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("campaign id must not be empty")
        return v

    def target_end_date(self, today: date) -> date:
        return self.trial_end_date or today - timedelta(days=1)

    @classmethod
    def from_mapping(cls, values: Dict[str, Any]) -> "RunConfig":
        try:
            return cls.model_validate(values)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid run parameters: {exc}") from exc

    @classmethod
    def from_json(cls, text: str) -> "RunConfig":
        """Parse run parameters given as a single JSON object."""
        try:
            values = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Run parameters are not valid JSON: {exc}") from exc
        if not isinstance(values, dict):
            raise ConfigurationError("Run parameters must be a JSON object")
        return cls.from_mapping(values)
