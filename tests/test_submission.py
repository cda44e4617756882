import json

import google.auth.exceptions
import gspread
import pytest
import requests

from word_intensity.errors import (
    ChunkSubmissionError,
    RemoteSubmissionError,
    SubmissionTimeoutError,
)
from word_intensity.persistence import LocalFallbackStore
from word_intensity.question_bank import Question
from word_intensity.responses import ResponseStore
from word_intensity.submission import (
    AppsScriptTransport,
    DryRunTransport,
    SheetsTransport,
    SubmissionPipeline,
    SubmissionStatus,
    UnconfiguredTransport,
    build_batch,
    build_transport,
    chunk_responses,
)
from word_intensity.utils.persistence import SurveySettings

from .conftest import ScriptedTransport, answer_all, make_questions


def make_batch(participant, count):
    questions = make_questions(count)
    store = ResponseStore(questions)
    answer_all(store)
    return build_batch(participant, "1", questions, store)


class TestBuildBatch:
    def test_only_complete_responses_in_question_order(self, participant):
        questions = make_questions(4)
        store = ResponseStore(questions)
        store.select_word(2, "a2")
        store.select_word(2, "d2")
        store.select_word(0, "b0")
        store.select_word(0, "c0")
        store.select_word(1, "a1")
        batch = build_batch(participant, "3", questions, store)
        assert [r.question_number for r in batch.responses] == [1, 3]
        assert batch.responses[0].most_intense == "b0"
        assert batch.responses[0].least_intense == "c0"

    def test_include_incomplete_for_review(self, participant):
        questions = make_questions(2)
        store = ResponseStore(questions)
        store.select_word(1, "a1")
        batch = build_batch(participant, "1", questions, store, include_incomplete=True)
        assert [r.question_number for r in batch.responses] == [2]
        assert batch.responses[0].least_intense is None

    def test_attention_checks_are_flagged(self, participant):
        questions = (
            Question("attitude", ("boring", "tedious", "dull", "amazing")),
            Question("brightness", ("dim", "bright", "brilliant", "radiant")),
        )
        store = ResponseStore(questions)
        answer_all(store)
        batch = build_batch(participant, "1", questions, store)
        assert [r.is_example for r in batch.responses] == [True, False]

    def test_payload_shape(self, participant):
        payload = make_batch(participant, 1).to_payload(timestamp="2024-05-01T10:00:00Z")
        assert payload == {
            "timestamp": "2024-05-01T10:00:00Z",
            "selectedSurvey": "1",
            "participant": participant.to_payload(),
            "responses": [
                {
                    "questionNumber": 1,
                    "meaning": "meaning 1",
                    "mostIntense": "a0",
                    "leastIntense": "d0",
                    "words": ["a0", "b0", "c0", "d0"],
                    "isExample": False,
                }
            ],
        }

    def test_chunk_payload_carries_chunk_info(self, participant):
        payload = make_batch(participant, 2).to_payload(chunk_number=2, total_chunks=3)
        assert payload["chunkInfo"] == {"chunkNumber": 2, "totalChunks": 3, "isChunked": True}


def test_chunk_responses_sizes(participant):
    batch = make_batch(participant, 60)
    chunks = chunk_responses(batch.responses, 25)
    assert [len(c) for c in chunks] == [25, 25, 10]
    assert [r.question_number for c in chunks for r in c] == list(range(1, 61))


class TestChunkedSend:
    def test_sixty_responses_go_out_as_three_ordered_chunks(self, participant, no_sleep):
        delays, sleep = no_sleep
        transport = ScriptedTransport()
        pipeline = SubmissionPipeline(transport, chunk_size=25, chunk_delay=1.0, sleep=sleep)
        outcome = pipeline.submit(make_batch(participant, 60))
        assert outcome.status is SubmissionStatus.REMOTE_SUCCESS
        assert outcome.rows_accepted == 60
        assert outcome.total_chunks == 3
        assert [len(p["responses"]) for p in transport.sent] == [25, 25, 10]
        assert [p["chunkInfo"]["chunkNumber"] for p in transport.sent] == [1, 2, 3]
        assert {p["chunkInfo"]["totalChunks"] for p in transport.sent} == {3}
        first_numbers = [p["responses"][0]["questionNumber"] for p in transport.sent]
        assert first_numbers == [1, 26, 51]
        assert delays == [1.0, 1.0]
        assert transport.timeouts == [pipeline.chunk_timeout] * 3

    def test_failed_chunk_aborts_the_rest(self, participant, no_sleep):
        transport = ScriptedTransport(fail_chunks=(2,))
        pipeline = SubmissionPipeline(transport, chunk_size=25, sleep=no_sleep[1])
        with pytest.raises(ChunkSubmissionError) as excinfo:
            pipeline.send(make_batch(participant, 60))
        assert excinfo.value.chunk_number == 2
        assert excinfo.value.total_chunks == 3
        assert excinfo.value.partial
        assert len(transport.sent) == 2

    def test_outcome_reports_failed_chunk(self, participant, tmp_path, no_sleep):
        transport = ScriptedTransport(fail_chunks=(2,))
        pipeline = SubmissionPipeline(
            transport,
            local_store=LocalFallbackStore(tmp_path),
            chunk_size=25,
            sleep=no_sleep[1],
        )
        outcome = pipeline.submit(make_batch(participant, 60))
        assert outcome.failed_chunk == 2
        assert outcome.partial
        assert "chunk 2 of 3" in outcome.error

    def test_small_batch_is_sent_whole(self, participant):
        transport = ScriptedTransport()
        pipeline = SubmissionPipeline(transport, chunk_size=25)
        pipeline.submit(make_batch(participant, 25))
        assert len(transport.sent) == 1
        assert "chunkInfo" not in transport.sent[0]
        assert transport.timeouts == [pipeline.timeout]

    def test_threshold_above_chunk_size(self, participant):
        transport = ScriptedTransport()
        pipeline = SubmissionPipeline(transport, chunk_size=25, chunk_threshold=50, chunk_delay=0)
        pipeline.submit(make_batch(participant, 50))
        assert len(transport.sent) == 1
        pipeline.submit(make_batch(participant, 51))
        assert len(transport.sent) == 4


class TestRetry:
    def test_retryable_errors_are_retried(self, participant, no_sleep):
        delays, sleep = no_sleep
        transport = ScriptedTransport(
            fail_calls=(1, 2), error=RemoteSubmissionError("connection reset", retryable=True)
        )
        pipeline = SubmissionPipeline(transport, max_attempts=3, retry_backoff=1.0, sleep=sleep)
        outcome = pipeline.submit(make_batch(participant, 3))
        assert outcome.remote_ok
        assert len(transport.sent) == 3
        assert len(delays) == 2
        assert 1.0 <= delays[0] <= 1.5
        assert 2.0 <= delays[1] <= 2.5

    def test_timeouts_give_up_after_max_attempts(self, participant, no_sleep):
        transport = ScriptedTransport(
            fail_calls=(1, 2, 3), error=SubmissionTimeoutError("Submission timeout")
        )
        pipeline = SubmissionPipeline(transport, max_attempts=2, sleep=no_sleep[1])
        with pytest.raises(SubmissionTimeoutError):
            pipeline.send(make_batch(participant, 3))
        assert len(transport.sent) == 2

    def test_explicit_server_error_is_not_retried(self, participant, no_sleep):
        transport = ScriptedTransport(fail_calls=(1,))
        pipeline = SubmissionPipeline(transport, max_attempts=3, sleep=no_sleep[1])
        with pytest.raises(RemoteSubmissionError):
            pipeline.send(make_batch(participant, 3))
        assert len(transport.sent) == 1


class TestFallbackChain:
    def test_remote_failure_saves_locally_and_exports(self, participant, tmp_path, no_sleep):
        local = LocalFallbackStore(tmp_path / "local")
        pipeline = SubmissionPipeline(
            ScriptedTransport(fail_calls=(1,)),
            local_store=local,
            export_dir=tmp_path / "exports",
            export_format="csv",
            sleep=no_sleep[1],
        )
        batch = make_batch(participant, 4)
        outcome = pipeline.submit(batch)

        assert outcome.status is SubmissionStatus.FALLBACK_SAVED
        records = local.records()
        assert len(records) == 1
        assert records[0]["id"] == outcome.local_record_id
        assert records[0]["participant"]["name"] == participant.name
        assert records[0]["responses"] == [item.to_payload() for item in batch.responses]
        assert outcome.export_path.exists()
        assert "Ada_Lovelace" in outcome.export_path.name

    def test_local_store_appends(self, participant, tmp_path, no_sleep):
        local = LocalFallbackStore(tmp_path)
        pipeline = SubmissionPipeline(
            ScriptedTransport(fail_calls=(1, 2)), local_store=local, sleep=no_sleep[1]
        )
        pipeline.submit(make_batch(participant, 2))
        pipeline.submit(make_batch(participant, 3))
        assert [len(r["responses"]) for r in local.records()] == [2, 3]

    def test_every_layer_failing(self, participant, tmp_path, no_sleep):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")
        pipeline = SubmissionPipeline(
            ScriptedTransport(fail_calls=(1,)),
            local_store=LocalFallbackStore(blocker / "local"),
            export_dir=blocker / "exports",
            export_format="csv",
            sleep=no_sleep[1],
        )
        outcome = pipeline.submit(make_batch(participant, 2))
        assert outcome.status is SubmissionStatus.FALLBACK_FAILED
        assert outcome.local_record_id is None
        assert outcome.export_path is None
        assert len(outcome.fallback_errors) == 2

    def test_unconfigured_endpoint_still_falls_back(self, participant, tmp_path):
        local = LocalFallbackStore(tmp_path)
        outcome = SubmissionPipeline(UnconfiguredTransport(), local_store=local).submit(
            make_batch(participant, 2)
        )
        assert outcome.fallback_saved
        assert "No submission endpoint" in outcome.error


class FakeHttpResponse:
    def __init__(self, status_code=200, body=None, text=None):
        self.status_code = status_code
        self._body = body
        self.text = text if text is not None else json.dumps(body)

    def json(self):
        if self._body is None:
            raise ValueError("No JSON object could be decoded")
        return self._body


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


class TestAppsScriptTransport:
    URL = "https://script.google.com/macros/s/example/exec"

    def test_json_mode_returns_rows_added(self):
        session = FakeSession(FakeHttpResponse(body={"success": True, "message": "Data saved!", "rowsAdded": 2}))
        transport = AppsScriptTransport(self.URL, session=session)
        assert transport.send({"responses": [{}, {}]}, timeout=30) == 2
        url, kwargs = session.calls[0]
        assert url == self.URL
        assert kwargs["json"] == {"responses": [{}, {}]}
        assert kwargs["timeout"] == 30

    def test_form_mode_posts_data_field(self):
        session = FakeSession(FakeHttpResponse(body={"success": True, "rowsAdded": 1}))
        AppsScriptTransport(self.URL, mode="form", session=session).send({"responses": [{}]}, timeout=5)
        _, kwargs = session.calls[0]
        assert json.loads(kwargs["data"]["data"]) == {"responses": [{}]}

    def test_unreadable_reply_is_indeterminate(self):
        session = FakeSession(FakeHttpResponse(text="<html>Moved Temporarily</html>"))
        assert AppsScriptTransport(self.URL, session=session).send({"responses": []}, 5) is None

    def test_indeterminate_counts_as_delivered(self, participant):
        session = FakeSession(FakeHttpResponse(text="<html></html>"))
        pipeline = SubmissionPipeline(AppsScriptTransport(self.URL, session=session))
        outcome = pipeline.submit(make_batch(participant, 3))
        assert outcome.remote_ok
        assert outcome.indeterminate
        assert outcome.rows_accepted == 3

    @pytest.mark.parametrize("rows", ["n/a", "2.5", [1, 2], {"count": 2}])
    def test_unreadable_row_count_is_indeterminate(self, rows):
        session = FakeSession(FakeHttpResponse(body={"success": True, "rowsAdded": rows}))
        assert AppsScriptTransport(self.URL, session=session).send({"responses": [{}]}, 5) is None

    def test_unreadable_row_count_still_counts_as_delivered(self, participant, tmp_path):
        session = FakeSession(FakeHttpResponse(body={"success": True, "rowsAdded": "n/a"}))
        local = LocalFallbackStore(tmp_path)
        outcome = SubmissionPipeline(AppsScriptTransport(self.URL, session=session), local_store=local).submit(
            make_batch(participant, 3)
        )
        assert outcome.remote_ok
        assert outcome.indeterminate
        assert outcome.rows_accepted == 3
        assert local.records() == []

    def test_explicit_error_reply(self):
        session = FakeSession(FakeHttpResponse(body={"success": False, "error": "Sheet locked"}))
        with pytest.raises(RemoteSubmissionError, match="Sheet locked"):
            AppsScriptTransport(self.URL, session=session).send({"responses": []}, 5)

    def test_timeout(self):
        session = FakeSession(error=requests.Timeout("read timed out"))
        with pytest.raises(TimeoutError):
            AppsScriptTransport(self.URL, session=session).send({"responses": []}, 60)

    def test_connection_error_is_retryable(self):
        session = FakeSession(error=requests.ConnectionError("refused"))
        with pytest.raises(RemoteSubmissionError) as excinfo:
            AppsScriptTransport(self.URL, session=session).send({"responses": []}, 5)
        assert excinfo.value.retryable

    def test_http_error_status(self):
        session = FakeSession(FakeHttpResponse(status_code=503, text="unavailable"))
        with pytest.raises(RemoteSubmissionError) as excinfo:
            AppsScriptTransport(self.URL, session=session).send({"responses": []}, 5)
        assert excinfo.value.retryable

    def test_uses_requests_module_by_default(self, monkeypatch):
        calls = []

        def fake_post(url, **kwargs):
            calls.append(url)
            return FakeHttpResponse(body={"success": True, "rowsAdded": 1})

        monkeypatch.setattr(requests, "post", fake_post)
        assert AppsScriptTransport(self.URL).ping() == 1
        assert calls == [self.URL]


class FakeWorksheet:
    def __init__(self):
        self.rows = []
        self.header = []
        self.row_count = 1
        self.col_count = 12

    def row_values(self, index):
        return list(self.header)

    def update(self, cell_range, values):
        self.header = list(values[0])

    def resize(self, rows, cols):
        self.row_count, self.col_count = rows, cols

    def append_rows(self, rows, **kwargs):
        self.rows.extend(rows)


class FakeClient:
    def __init__(self):
        self.timeout = None

    def set_timeout(self, timeout):
        self.timeout = timeout


class FakeSheet:
    def __init__(self):
        self.ws = FakeWorksheet()
        self.client = FakeClient()

    def worksheet(self, name):
        return self.ws


def test_sheets_transport_appends_one_row_per_response(participant):
    sheet = FakeSheet()
    payload = make_batch(participant, 3).to_payload(timestamp="2024-05-01T10:00:00Z")
    assert SheetsTransport(sheet=sheet).send(payload, timeout=30) == 3
    assert sheet.client.timeout == 30
    assert sheet.ws.header[0] == "Timestamp"
    assert sheet.ws.rows[0][:3] == ["2024-05-01T10:00:00Z", "1", "Ada Lovelace"]
    assert [row[7] for row in sheet.ws.rows] == [1, 2, 3]


class FakeApiResponse:
    status_code = 503
    text = "backend unavailable"

    def json(self):
        return {"error": {"code": 503, "message": "backend unavailable", "status": "UNAVAILABLE"}}


class BrokenSheet(FakeSheet):
    """Sheet whose worksheet lookup raises ``error`` on every call."""

    def __init__(self, error):
        super().__init__()
        self.error = error
        self.calls = 0

    def worksheet(self, name):
        self.calls += 1
        raise self.error


class TestSheetsTransportErrors:
    def send(self, error):
        payload = {"responses": [{"questionNumber": 1}]}
        return SheetsTransport(sheet=BrokenSheet(error)).send(payload, timeout=30)

    def test_api_error_is_retryable(self):
        with pytest.raises(RemoteSubmissionError) as excinfo:
            self.send(gspread.exceptions.APIError(FakeApiResponse()))
        assert excinfo.value.retryable

    def test_timeout(self):
        with pytest.raises(SubmissionTimeoutError) as excinfo:
            self.send(requests.Timeout("read timed out"))
        assert excinfo.value.retryable
        assert isinstance(excinfo.value, TimeoutError)

    def test_connection_error_is_retryable(self):
        with pytest.raises(RemoteSubmissionError) as excinfo:
            self.send(requests.ConnectionError("network down"))
        assert excinfo.value.retryable

    def test_auth_transport_error_is_retryable(self):
        with pytest.raises(RemoteSubmissionError) as excinfo:
            self.send(google.auth.exceptions.TransportError("token endpoint unreachable"))
        assert excinfo.value.retryable

    @pytest.mark.parametrize(
        "error",
        [
            google.auth.exceptions.RefreshError("invalid_grant"),
            ValueError("Could not deserialize key data"),
            RuntimeError("No Google credentials."),
            gspread.exceptions.SpreadsheetNotFound("missing"),
        ],
    )
    def test_configuration_problems_are_not_retried(self, error):
        with pytest.raises(RemoteSubmissionError) as excinfo:
            self.send(error)
        assert not excinfo.value.retryable

    @pytest.mark.parametrize(
        "error",
        [
            requests.ConnectionError("network down"),
            google.auth.exceptions.RefreshError("invalid_grant"),
            ValueError("Could not deserialize key data"),
        ],
    )
    def test_failures_reach_the_fallback_chain(self, participant, tmp_path, no_sleep, error):
        sheet = BrokenSheet(error)
        local = LocalFallbackStore(tmp_path / "local")
        pipeline = SubmissionPipeline(
            SheetsTransport(sheet=sheet),
            local_store=local,
            export_dir=tmp_path / "exports",
            export_format="csv",
            max_attempts=2,
            sleep=no_sleep[1],
        )
        outcome = pipeline.submit(make_batch(participant, 3))
        assert outcome.status is SubmissionStatus.FALLBACK_SAVED
        assert len(local.records()) == 1
        assert outcome.export_path.exists()
        expected_calls = 2 if isinstance(error, requests.ConnectionError) else 1
        assert sheet.calls == expected_calls


class TestBuildTransport:
    def test_dry_run_wins(self):
        settings = SurveySettings(dry_run=True, endpoint_url="https://example.org")
        assert isinstance(build_transport(settings), DryRunTransport)

    def test_endpoint(self):
        transport = build_transport(SurveySettings(endpoint_url="https://example.org", transport_mode="form"))
        assert isinstance(transport, AppsScriptTransport)
        assert transport.mode == "form"

    def test_sheets(self):
        assert isinstance(build_transport(SurveySettings(spreadsheet_id="abc")), SheetsTransport)

    def test_nothing_configured(self):
        assert isinstance(build_transport(SurveySettings()), UnconfiguredTransport)
