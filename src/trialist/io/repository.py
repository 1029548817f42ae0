"""SQLite-backed survey repository.

The schema mirrors the parts of the ohmage database the processor reads:
survey responses with their prompt responses, and observer stream data
holding normalized documents and analysis results.
"""

import sqlite3
import json
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Set

from pydantic import ValidationError

from ..config.settings import settings
from ..core.errors import MalformedSurveyError, RepositoryError
from ..core.lookups import SurveyKind
from ..core.models import AnalysisResult, NormalizedDocument, PromptResponse, SurveyRecord, TrialKey
from ..utils.logging import get_logger
from .base import SurveyRepository

logger = get_logger(__name__)


class SQLiteSurveyRepository(SurveyRepository):
    """
    Survey repository over a single SQLite connection.

    Normalized documents and analysis results are appended to
    ``observer_stream_data`` under the configured observer and stream ids,
    so earlier outputs are never overwritten.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self.conn = sqlite3.connect(str(self.db_path), isolation_level="DEFERRED")
            self.conn.execute("PRAGMA foreign_keys = ON")
            self._init_schema()
        except sqlite3.Error as e:
            raise RepositoryError(f"Could not open survey database {self.db_path}: {e}") from e

    def _init_schema(self) -> None:
        self.conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS survey_response (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                uuid TEXT NOT NULL UNIQUE,
                user_id TEXT NOT NULL,
                campaign_urn TEXT NOT NULL,
                survey_id TEXT NOT NULL,
                epoch_millis INTEGER NOT NULL,
                phone_timezone TEXT,
                survey TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_survey_campaign ON survey_response(campaign_urn, survey_id, user_id, epoch_millis);

            CREATE TABLE IF NOT EXISTS prompt_response (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                survey_response_id INTEGER NOT NULL,
                prompt_id TEXT NOT NULL,
                response TEXT,
                FOREIGN KEY (survey_response_id) REFERENCES survey_response(id)
            );

            CREATE INDEX IF NOT EXISTS idx_prompt_survey ON prompt_response(survey_response_id);

            CREATE TABLE IF NOT EXISTS observer_stream_data (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                observer_id TEXT NOT NULL,
                observer_version TEXT NOT NULL,
                stream_id TEXT NOT NULL,
                stream_version TEXT NOT NULL,
                setup_survey_id TEXT,
                data TEXT NOT NULL,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_stream_user ON observer_stream_data(observer_id, stream_id, user_id);
            """
        )
        self.conn.commit()

    @contextmanager
    def _database_errors(self, action: str) -> Iterator[None]:
        try:
            yield
        except sqlite3.Error as e:
            logger.error(f"Database error while trying to {action}: {e}")
            raise RepositoryError(f"Could not {action}: {e}") from e

    def _stream(self, results: bool) -> Sequence[str]:
        if results:
            return (settings.observer_id, settings.observer_version, settings.results_stream_id, settings.results_stream_version)
        return (settings.observer_id, settings.observer_version, settings.data_stream_id, settings.data_stream_version)

    @staticmethod
    def _parse_survey(
        survey_key: str, user_id: str, survey_id: str, epoch_millis: int, phone_timezone: Optional[str], survey_json: str
    ) -> SurveyRecord:
        try:
            survey = json.loads(survey_json)
            responses = [
                PromptResponse(prompt_id=item["prompt_id"], value=item.get("value"))
                for item in survey["responses"]
            ]
            return SurveyRecord(
                participant_id=str(user_id),
                kind=SurveyKind(survey_id),
                survey_key=survey_key,
                epoch_millis=epoch_millis,
                timezone=survey.get("timezone") or phone_timezone,
                responses=responses,
            )
        except (json.JSONDecodeError, KeyError, TypeError, AttributeError, ValueError, ValidationError) as e:
            logger.error(
                "Found a survey response that cannot be parsed",
                extra={"participant_id": user_id, "survey_key": survey_key},
            )
            raise MalformedSurveyError(
                f"Survey response {survey_key} is not a valid survey document: {e}",
                survey_key=survey_key,
                participant_id=str(user_id),
            ) from e

    def fetch_setup_and_start_surveys(self, campaign_id: str) -> List[SurveyRecord]:
        with self._database_errors("read setup and start surveys"):
            rows = self.conn.execute(
                """SELECT uuid, user_id, survey_id, epoch_millis, phone_timezone, survey
                   FROM survey_response
                   WHERE campaign_urn = ? AND survey_id IN ('setup', 'start')
                   ORDER BY user_id, epoch_millis, id""",
                (campaign_id,),
            ).fetchall()
        records = [self._parse_survey(*row) for row in rows]
        logger.info(f"Found {len(records)} setup and start survey responses", extra={"campaign_id": campaign_id})
        return records

    def fetch_main_survey_responses(
        self,
        participant_id: str,
        start_date: date,
        end_date: date,
        campaign_id: Optional[str] = None,
    ) -> List[SurveyRecord]:
        sql = """SELECT sr.uuid, sr.user_id, sr.epoch_millis, sr.phone_timezone, pr.prompt_id, pr.response
                 FROM prompt_response pr
                 JOIN survey_response sr ON pr.survey_response_id = sr.id
                 WHERE sr.survey_id = 'main'
                   AND sr.user_id = ?
                   AND DATE(sr.epoch_millis / 1000, 'unixepoch') BETWEEN ? AND ?"""
        params: List[Any] = [participant_id, start_date.isoformat(), end_date.isoformat()]
        if campaign_id is not None:
            sql += " AND sr.campaign_urn = ?"
            params.append(campaign_id)
        sql += " ORDER BY sr.epoch_millis, sr.id, pr.id"
        with self._database_errors("read main survey responses"):
            rows = self.conn.execute(sql, params).fetchall()
        return [
            SurveyRecord(
                participant_id=str(user_id),
                kind=SurveyKind.MAIN,
                survey_key=uuid,
                epoch_millis=epoch_millis,
                timezone=phone_timezone,
                responses=[PromptResponse(prompt_id=prompt_id, value=response)],
            )
            for uuid, user_id, epoch_millis, phone_timezone, prompt_id, response in rows
        ]

    def fetch_processed_trial_keys(self) -> Set[TrialKey]:
        with self._database_errors("read processed trials"):
            rows = self.conn.execute(
                """SELECT user_id, data FROM observer_stream_data
                   WHERE observer_id = ? AND observer_version = ? AND stream_id = ? AND stream_version = ?""",
                self._stream(results=True),
            ).fetchall()
        keys: Set[TrialKey] = set()
        for user_id, data in rows:
            try:
                setup_survey_id = json.loads(data)["setup_survey_id"]
            except (json.JSONDecodeError, KeyError, TypeError) as e:
                raise RepositoryError(
                    f"Stored analysis result for participant {user_id} has no setup_survey_id"
                ) from e
            keys.add(TrialKey(participant_id=str(user_id), setup_survey_id=str(setup_survey_id)))
        return keys

    def fetch_normalized_document(
        self,
        participant_id: str,
        setup_survey_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Optional[NormalizedDocument]:
        sql = """SELECT data FROM observer_stream_data
                 WHERE observer_id = ? AND observer_version = ? AND stream_id = ? AND stream_version = ?
                   AND user_id = ? AND setup_survey_id = ?"""
        params: List[Any] = [*self._stream(results=False), participant_id, setup_survey_id]
        if start_date is not None:
            sql += " AND json_extract(data, '$.metadata.trial_start_date') = ?"
            params.append(start_date.isoformat())
        if end_date is not None:
            sql += " AND json_extract(data, '$.metadata.trial_end_date') = ?"
            params.append(end_date.isoformat())
        sql += " ORDER BY id DESC LIMIT 1"
        with self._database_errors("read normalized trial data"):
            row = self.conn.execute(sql, params).fetchone()
        if not row:
            return None
        try:
            return NormalizedDocument.model_validate_json(row[0])
        except ValidationError as e:
            raise RepositoryError(
                f"Stored normalized data for participant {participant_id} cannot be read: {e}"
            ) from e

    def _insert_stream_data(
        self, participant_id: str, setup_survey_id: str, payload: Dict[str, Any], results: bool
    ) -> None:
        self.conn.execute(
            """INSERT INTO observer_stream_data
            (user_id, observer_id, observer_version, stream_id, stream_version, setup_survey_id, data, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                participant_id,
                *self._stream(results=results),
                setup_survey_id,
                json.dumps(payload),
                datetime.now(timezone.utc).isoformat(),
            ),
        )
        self.conn.commit()

    def store_normalized_document(
        self, participant_id: str, setup_survey_id: str, document: NormalizedDocument
    ) -> None:
        with self._database_errors("store normalized trial data"):
            self._insert_stream_data(participant_id, setup_survey_id, document.to_payload(), results=False)

    def store_analysis_result(self, participant_id: str, result: AnalysisResult) -> None:
        with self._database_errors("store trial analysis results"):
            self._insert_stream_data(participant_id, result.setup_survey_id, result.to_payload(), results=True)

    def add_survey_response(
        self,
        participant_id: str,
        campaign_id: str,
        kind: SurveyKind,
        survey_key: str,
        epoch_millis: int,
        timezone_id: Optional[str],
        responses: Sequence[PromptResponse],
    ) -> None:
        """Record a survey response together with its prompt responses."""
        survey = {
            "timezone": timezone_id,
            "responses": [{"prompt_id": r.prompt_id, "value": r.value} for r in responses],
        }
        with self._database_errors("store survey response"):
            cur = self.conn.execute(
                """INSERT INTO survey_response
                (uuid, user_id, campaign_urn, survey_id, epoch_millis, phone_timezone, survey)
                VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (survey_key, participant_id, campaign_id, SurveyKind(kind).value, epoch_millis, timezone_id, json.dumps(survey)),
            )
            self.conn.executemany(
                "INSERT INTO prompt_response (survey_response_id, prompt_id, response) VALUES (?, ?, ?)",
                [
                    (cur.lastrowid, r.prompt_id, None if r.value is None else _as_text(r.value))
                    for r in responses
                ],
            )
            self.conn.commit()

    def close(self) -> None:
        self.conn.close()


def _as_text(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value)
