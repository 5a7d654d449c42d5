"""Tests for the backend client: batching, result merging, and auth endpoints."""

import json

import httpx
import pytest

from devark.sync.api_client import (
    DevArkApiClient,
    UploadResult,
    calculate_checksum,
    create_size_batches,
    estimate_session_size,
    merge_results,
    to_json,
)

KIB = 1024


def session(i, size):
    return {"id": f"s{i}", "payload": "x" * size}


class Recorder:
    """MockTransport handler that records requests and replies from a route table."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self.routes[(request.method, request.url.path)]
        if callable(reply):
            reply = reply(request)
        return reply


def make_client(routes, token=None):
    recorder = Recorder(routes)
    client = DevArkApiClient(base_url="https://api.test", token=token, transport=httpx.MockTransport(recorder))
    return client, recorder


class TestBatching:
    """Tests for size-bounded batching."""

    def test_three_sessions_of_200k(self):
        sessions = [session(i, 200_000) for i in range(3)]
        batches = create_size_batches(sessions)
        assert [[s["id"] for s in b] for b in batches] == [["s0", "s1"], ["s2"]]

    def test_oversized_session_travels_alone(self):
        sessions = [session(0, 2 * KIB * KIB)]
        assert create_size_batches(sessions) == [sessions]

    def test_oversized_between_small(self):
        sessions = [session(0, 10), session(1, 2 * KIB * KIB), session(2, 10)]
        batches = create_size_batches(sessions)
        assert [[s["id"] for s in b] for b in batches] == [["s0"], ["s1"], ["s2"]]

    @pytest.mark.parametrize("target", [1, 500, 5 * KIB, 500 * KIB])
    def test_batches_preserve_order_and_cap(self, target):
        sessions = [session(i, (i * 37) % 900) for i in range(25)]
        batches = create_size_batches(sessions, target_size_bytes=target)
        assert [s for b in batches for s in b] == sessions
        for batch in batches:
            size = sum(estimate_session_size(s) for s in batch)
            assert len(batch) == 1 or size <= target * 0.8

    def test_empty(self):
        assert create_size_batches([]) == []

    def test_size_and_checksum_use_compact_json(self):
        data = {"a": [1, 2], "b": "é"}
        assert to_json(data) == '{"a":[1,2],"b":"é"}'
        assert estimate_session_size(data) == len('{"a":[1,2],"b":"é"}'.encode("utf-8"))
        assert calculate_checksum(data) == calculate_checksum({"a": [1, 2], "b": "é"})
        assert len(calculate_checksum(data)) == 64


class TestMergeResults:
    """Tests for merging per-batch upload results."""

    def test_merge(self):
        results = [
            UploadResult(success=True, created=2, duplicates=0, analysis_preview={"first": 1}, streak={"current": 3},
                         points_earned={"streak": 5, "volume": 2, "share": 0, "total": 7}),
            UploadResult(success=False, created=1, duplicates=1, analysis_preview={"second": 1}, streak={"current": 4},
                         points_earned={"streak": 3, "volume": 1, "share": 2, "total": 6}),
        ]
        merged = merge_results(results, total_sessions=4)
        assert not merged.success
        assert merged.sessions_processed == 4
        assert merged.created == 3
        assert merged.duplicates == 1
        assert merged.analysis_preview == {"first": 1}
        assert merged.streak == {"current": 4}
        assert merged.points_earned["streak"] == 5
        assert merged.points_earned["volume"] == 3
        assert merged.points_earned["share"] == 2
        assert merged.points_earned["total"] == 13

    def test_merge_nothing(self):
        merged = merge_results([], 0)
        assert merged.success
        assert merged.points_earned is None


class TestUpload:
    """Tests for the upload endpoint."""

    def test_zero_sessions_makes_no_request(self):
        client, recorder = make_client({})
        result = client.upload_sessions([])
        assert result.success
        assert result.created == 0
        assert result.duplicates == 0
        assert result.sessions_processed == 0
        assert recorder.requests == []

    def test_two_batches_with_progress(self):
        def reply(request):
            return httpx.Response(200, json={"success": True, "created": 1, "duplicates": 0})

        client, recorder = make_client({("POST", "/cli/sessions"): reply}, token="tok-1234567890")
        progress = []
        sessions = [session(i, 200_000) for i in range(3)]

        result = client.upload_sessions(sessions, on_progress=lambda done, total: progress.append((done, total)))

        assert progress == [(2, 3), (3, 3)]
        assert result.sessions_processed == 3
        assert result.created == 2
        assert len(recorder.requests) == 2

        first = recorder.requests[0]
        assert first.headers["x-devark-source"] == "ide_extension"
        assert first.headers["Authorization"] == "Bearer tok-1234567890"
        body = json.loads(first.content)
        assert body["batchNumber"] == 1
        assert body["totalBatches"] == 2
        assert body["totalSessions"] == 3
        assert body["checksum"] == calculate_checksum(body["sessions"])

    def test_http_error_propagates(self):
        client, _ = make_client({("POST", "/cli/sessions"): httpx.Response(500, json={"error": "boom"})})
        with pytest.raises(httpx.HTTPStatusError):
            client.upload_sessions([session(0, 10)])


class TestAuthEndpoints:
    """Tests for the CLI auth endpoints."""

    def test_create_auth_session(self):
        reply = httpx.Response(200, json={"authUrl": "https://app.test/auth/cli?x=1", "token": "sess-1"})
        client, _ = make_client({("POST", "/api/auth/cli/session"): reply})
        session_info = client.create_auth_session()
        assert session_info.token == "sess-1"
        assert session_info.auth_url == "https://app.test/auth/cli?x=1&source=ide_extension"

    def test_create_auth_session_missing_url(self):
        client, _ = make_client({("POST", "/api/auth/cli/session"): httpx.Response(200, json={"token": "t"})})
        with pytest.raises(ValueError):
            client.create_auth_session()

    def test_completion_pending_on_404(self):
        client, _ = make_client({("GET", "/api/auth/cli/complete"): httpx.Response(404)})
        assert not client.check_auth_completion("sess-1").success

    def test_completion_with_token(self):
        reply = httpx.Response(200, json={"success": True, "userId": 7, "token": "api-token-123"})
        client, recorder = make_client({("GET", "/api/auth/cli/complete"): reply})
        completion = client.check_auth_completion("sess-1")
        assert completion.success
        assert completion.user_id == 7
        assert completion.token == "api-token-123"
        assert recorder.requests[0].url.params["token"] == "sess-1"

    def test_stream_success(self):
        body = b'data: {"status": "pending"}\n\ndata: {"status": "success", "token": "api-token-xyz"}\n\n'
        reply = httpx.Response(200, content=body, headers={"Content-Type": "text/event-stream"})
        client, _ = make_client({("GET", "/api/auth/cli/stream/sess-1"): reply})
        assert client.stream_auth_token("sess-1") == "api-token-xyz"

    @pytest.mark.parametrize("status", ["error", "expired", "timeout"])
    def test_stream_failure(self, status):
        body = f'data: {{"status": "{status}"}}\n\n'.encode()
        reply = httpx.Response(200, content=body, headers={"Content-Type": "text/event-stream"})
        client, _ = make_client({("GET", "/api/auth/cli/stream/sess-1"): reply})
        with pytest.raises(RuntimeError):
            client.stream_auth_token("sess-1")

    def test_stream_closed_early(self):
        reply = httpx.Response(200, content=b"data: not json\n\n", headers={"Content-Type": "text/event-stream"})
        client, _ = make_client({("GET", "/api/auth/cli/stream/sess-1"): reply})
        with pytest.raises(RuntimeError, match="closed"):
            client.stream_auth_token("sess-1")

    def test_verify_token(self):
        reply = httpx.Response(200, json={"valid": True, "user": {"id": "u1", "email": "dev@example.com"}})
        client, _ = make_client({("GET", "/api/auth/cli/verify"): reply}, token="tok-1234567890")
        result = client.verify_token()
        assert result.valid
        assert result.user_id == "u1"

    def test_verify_token_failure_is_invalid(self):
        client, _ = make_client({("GET", "/api/auth/cli/verify"): httpx.Response(401)})
        assert not client.verify_token().valid


class TestUserEndpoints:
    """Tests for the read-only user endpoints."""

    def test_last_session_missing(self):
        client, _ = make_client({("GET", "/api/sessions/last"): httpx.Response(404)})
        assert client.get_last_session_date().timestamp is None

    def test_last_session(self):
        reply = httpx.Response(200, json={"lastSessionTimestamp": "2026-01-02T03:04:05Z", "lastSessionId": "s9"})
        client, _ = make_client({("GET", "/api/sessions/last"): reply})
        last = client.get_last_session_date()
        assert last.session_id == "s9"
        assert last.timestamp.year == 2026

    def test_recent_sessions_limit_clamped(self):
        client, recorder = make_client({("GET", "/api/sessions/recent"): httpx.Response(200, json={"sessions": [{"id": 1}]})})
        assert client.get_recent_sessions(limit=500) == [{"id": 1}]
        assert recorder.requests[0].url.params["limit"] == "100"

    def test_streak(self):
        reply = httpx.Response(200, json={"current": 3, "longest": 9, "points": 40, "rank": 2})
        client, _ = make_client({("GET", "/api/user/streak"): reply})
        streak = client.get_streak()
        assert (streak.current, streak.longest, streak.points) == (3, 9, 40)
        assert streak.extra == {"rank": 2}
