"""Integration tests for the SQLite survey repository.

These tests write real survey responses and stream data into a temporary
database and read them back through the repository interface.
"""

from datetime import date
from pathlib import Path
import json
import tempfile
import shutil

import pytest

from trialist.core.errors import MalformedSurveyError, RepositoryError
from trialist.core.lookups import SurveyKind
from trialist.core.models import AnalysisResult, TrialKey
from trialist.io.repository import SQLiteSurveyRepository
from trialist.trials.normalizer import normalize_trial
from tests.factories import CAMPAIGN, LA, main_rows, make_trial, millis, prompts, seed_trial

pytestmark = pytest.mark.integration


@pytest.fixture
def temp_workspace():
    """Create a temporary workspace for the database."""
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    shutil.rmtree(temp_dir)


@pytest.fixture
def repository(temp_workspace):
    repo = SQLiteSurveyRepository(temp_workspace / "db" / "surveys.db")
    yield repo
    repo.close()


@pytest.fixture
def document():
    rows = main_rows("m1", millis(2020, 1, 2, 20), {"currentRegimen": "0", "painAverage": "4"})
    return normalize_trial(make_trial(), rows, CAMPAIGN)


class TestSchema:
    def test_creates_database_file(self, temp_workspace, repository):
        assert (temp_workspace / "db" / "surveys.db").exists()

    def test_reopening_keeps_data(self, temp_workspace, repository):
        seed_trial(repository)
        repository.close()
        with SQLiteSurveyRepository(temp_workspace / "db" / "surveys.db") as reopened:
            assert len(reopened.fetch_setup_and_start_surveys(CAMPAIGN)) == 2


class TestSetupAndStartSurveys:
    def test_ordered_by_participant_then_time(self, repository):
        seed_trial(repository, participant_id="2")
        seed_trial(repository, participant_id="1")
        records = repository.fetch_setup_and_start_surveys(CAMPAIGN)
        assert [(r.participant_id, r.kind) for r in records] == [
            ("1", SurveyKind.SETUP),
            ("1", SurveyKind.START),
            ("2", SurveyKind.SETUP),
            ("2", SurveyKind.START),
        ]

    def test_survey_payload_is_decoded(self, repository):
        seed_trial(repository)
        setup, start = repository.fetch_setup_and_start_surveys(CAMPAIGN)
        assert setup.survey_key == "setup-1"
        assert setup.timezone == LA
        assert setup.value_for("regimenDuration") == 0
        assert setup.value_for("regimenA") == "[0]"
        assert start.value_for("startPrompt") == "2020-01-01"

    def test_filtered_by_campaign(self, repository):
        seed_trial(repository, participant_id="1")
        seed_trial(repository, participant_id="2", campaign_id="urn:campaign:other")
        records = repository.fetch_setup_and_start_surveys(CAMPAIGN)
        assert {r.participant_id for r in records} == {"1"}

    def test_main_surveys_excluded(self, repository):
        seed_trial(repository)
        kinds = {r.kind for r in repository.fetch_setup_and_start_surveys(CAMPAIGN)}
        assert kinds == {SurveyKind.SETUP, SurveyKind.START}

    def test_timezone_falls_back_to_phone_timezone(self, repository):
        repository.conn.execute(
            """INSERT INTO survey_response
            (uuid, user_id, campaign_urn, survey_id, epoch_millis, phone_timezone, survey)
            VALUES (?, ?, ?, ?, ?, ?, ?)""",
            ("start-x", "1", CAMPAIGN, "start", 0, "Europe/Paris", json.dumps({"responses": []})),
        )
        repository.conn.commit()
        (record,) = repository.fetch_setup_and_start_surveys(CAMPAIGN)
        assert record.timezone == "Europe/Paris"

    def test_unparseable_survey_raises(self, repository):
        repository.conn.execute(
            """INSERT INTO survey_response
            (uuid, user_id, campaign_urn, survey_id, epoch_millis, phone_timezone, survey)
            VALUES (?, ?, ?, ?, ?, ?, ?)""",
            ("setup-x", "1", CAMPAIGN, "setup", 0, LA, "{not json"),
        )
        repository.conn.commit()
        with pytest.raises(MalformedSurveyError) as exc_info:
            repository.fetch_setup_and_start_surveys(CAMPAIGN)
        assert exc_info.value.survey_key == "setup-x"


class TestMainSurveyResponses:
    def test_one_record_per_prompt(self, repository):
        seed_trial(repository, main_days=(2,))
        records = repository.fetch_main_survey_responses("1", date(2020, 1, 1), date(2020, 1, 8))
        assert [r.responses[0].prompt_id for r in records] == ["currentRegimen", "painAverage", "notesAboutToday"]
        assert all(r.survey_key == "main-1-2" for r in records)
        assert records[1].responses[0].value == "2"

    def test_window_is_inclusive_utc_dates(self, repository):
        seed_trial(repository, main_days=(1, 2, 8, 9))
        records = repository.fetch_main_survey_responses("1", date(2020, 1, 2), date(2020, 1, 8))
        assert sorted({r.survey_key for r in records}) == ["main-1-2", "main-1-8"]

    def test_ordered_by_submission_time(self, repository):
        seed_trial(repository, main_days=(6, 2, 3))
        records = repository.fetch_main_survey_responses("1", date(2020, 1, 1), date(2020, 1, 8))
        keys = [r.survey_key for r in records]
        assert keys == sorted(keys, key=lambda k: int(k.rsplit("-", 1)[1]))

    def test_other_participants_excluded(self, repository):
        seed_trial(repository, participant_id="1")
        seed_trial(repository, participant_id="2")
        records = repository.fetch_main_survey_responses("2", date(2020, 1, 1), date(2020, 1, 8))
        assert {r.participant_id for r in records} == {"2"}

    def test_campaign_filter(self, repository):
        seed_trial(repository, campaign_id="urn:campaign:other")
        assert repository.fetch_main_survey_responses(
            "1", date(2020, 1, 1), date(2020, 1, 8), campaign_id=CAMPAIGN
        ) == []
        assert repository.fetch_main_survey_responses("1", date(2020, 1, 1), date(2020, 1, 8)) != []


class TestStreamData:
    def test_no_processed_trials(self, repository):
        assert repository.fetch_processed_trial_keys() == set()

    def test_stored_result_marks_trial_processed(self, repository):
        repository.store_analysis_result("1", AnalysisResult.from_response({"p": 0.1}, "setup-1"))
        assert repository.fetch_processed_trial_keys() == {TrialKey(participant_id="1", setup_survey_id="setup-1")}

    def test_results_are_appended(self, repository):
        for _ in range(2):
            repository.store_analysis_result("1", AnalysisResult.from_response({"p": 0.1}, "setup-1"))
        count = repository.conn.execute("SELECT COUNT(*) FROM observer_stream_data").fetchone()[0]
        assert count == 2
        assert len(repository.fetch_processed_trial_keys()) == 1

    def test_result_without_setup_id_raises(self, repository):
        repository.conn.execute(
            """INSERT INTO observer_stream_data
            (user_id, observer_id, observer_version, stream_id, stream_version, setup_survey_id, data, created_at)
            SELECT '1', 'io.omh.trialist', '2013013000', 'results', '2013013000', NULL, '{}', 'now'"""
        )
        repository.conn.commit()
        with pytest.raises(RepositoryError):
            repository.fetch_processed_trial_keys()

    def test_normalized_document_roundtrip(self, repository, document):
        assert repository.fetch_normalized_document("1", "setup-1") is None
        repository.store_normalized_document("1", "setup-1", document)
        restored = repository.fetch_normalized_document("1", "setup-1")
        assert restored.to_payload() == document.to_payload()

    def test_normalized_document_filtered_by_window(self, repository, document):
        repository.store_normalized_document("1", "setup-1", document)
        found = repository.fetch_normalized_document(
            "1", "setup-1", start_date=date(2020, 1, 1), end_date=date(2020, 1, 8)
        )
        assert found is not None
        assert repository.fetch_normalized_document(
            "1", "setup-1", start_date=date(2020, 1, 10), end_date=date(2020, 1, 17)
        ) is None

    def test_normalized_document_keyed_by_setup(self, repository, document):
        repository.store_normalized_document("1", "setup-1", document)
        assert repository.fetch_normalized_document("1", "setup-2") is None

    def test_latest_normalized_document_wins(self, repository, document):
        repository.store_normalized_document("1", "setup-1", document)
        updated = document.model_copy(update={"data": []})
        repository.store_normalized_document("1", "setup-1", updated)
        assert repository.fetch_normalized_document("1", "setup-1").data == []

    def test_normalized_documents_are_not_results(self, repository, document):
        repository.store_normalized_document("1", "setup-1", document)
        assert repository.fetch_processed_trial_keys() == set()


class TestFailures:
    def test_closed_connection_raises_repository_error(self, temp_workspace):
        repo = SQLiteSurveyRepository(temp_workspace / "closed.db")
        repo.close()
        with pytest.raises(RepositoryError):
            repo.fetch_processed_trial_keys()

    def test_add_survey_rejects_unknown_kind(self, repository):
        with pytest.raises(ValueError):
            repository.add_survey_response("1", CAMPAIGN, "weekly", "w-1", 0, LA, prompts({"x": 1}))
