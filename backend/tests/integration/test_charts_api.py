import pytest

from conftest import VALID_ANALYSIS_REPLY, FakeChatClient


class TestHealth:

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "ai_configured": True}


class TestDetectAndParse:
    """Tests for /api/v1/detect and /api/v1/parse."""

    @pytest.mark.asyncio
    async def test_detect(self, client):
        response = await client.post("/api/v1/detect", json={"text": "Apples: 10\nOranges: 20"})

        assert response.status_code == 200
        data = response.json()
        assert data["format"] == "keyvalue"
        assert data["confidence"] == 0.9
        assert data["data_type"] == "categorical"

    @pytest.mark.asyncio
    async def test_detect_empty(self, client):
        response = await client.post("/api/v1/detect", json={"text": ""})

        assert response.status_code == 200
        assert response.json()["format"] == "unknown"

    @pytest.mark.asyncio
    async def test_parse(self, client):
        response = await client.post("/api/v1/parse", json={"text": "Jan 100 Feb 200 Mar 150"})

        assert response.status_code == 200
        data = response.json()
        assert data["parsed"]["labels"] == ["Jan", "Feb", "Mar"]
        assert data["parsed"]["data"] == [100, 200, 150]
        assert data["suggestion"]["type"] == "line"

    @pytest.mark.asyncio
    async def test_parse_missing_field(self, client):
        response = await client.post("/api/v1/parse", json={})
        assert response.status_code == 422


class TestCharts:
    """Tests for /api/v1/charts."""

    @pytest.mark.asyncio
    async def test_chart_with_ai(self, client, chat_client):
        """AI config is validated and styled before it is returned."""
        response = await client.post("/api/v1/charts", json={"input": "A,B,C\n10,20,30"})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["used_ai"] is True
        assert data["chart_type"] == "pie"
        assert data["config"]["options"]["responsive"] is True
        assert len(chat_client.calls) == 1

    @pytest.mark.asyncio
    async def test_chart_skip_ai(self, client, chat_client):
        response = await client.post(
            "/api/v1/charts",
            json={"input": "A,B,C\n10,20,30", "chart_type": "bar", "skip_ai": True},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["used_ai"] is False
        assert data["chart_type"] == "bar"
        assert data["config"]["data"]["labels"] == ["A", "B", "C"]
        assert chat_client.calls == []

    @pytest.mark.asyncio
    async def test_ai_failure_still_returns_chart(self, client, chat_client):
        """A broken AI reply degrades to the local config."""
        chat_client.outcomes = ["not a chart"]

        response = await client.post("/api/v1/charts", json={"input": "Jan 100 Feb 200 Mar 150"})

        assert response.status_code == 200
        data = response.json()
        assert data["used_ai"] is False
        assert data["config"]["type"] == "line"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", [
        "nothing to plot",
        "Name,City\nBob,Paris\nAnn,Rome",
        "Name,City,Country\nBob,Paris,France",
        "Apple: , Banana: .",
        "Wait ... then ...",
    ])
    async def test_unparsable_input(self, client, text):
        response = await client.post("/api/v1/charts", json={"input": text, "skip_ai": True})

        assert response.status_code == 422
        assert response.json() == {
            "detail": "Could not parse input. Showing sample data.",
            "code": "unparsable_input",
        }

    @pytest.mark.asyncio
    async def test_empty_input_rejected(self, client):
        response = await client.post("/api/v1/charts", json={"input": ""})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_chart_type_rejected(self, client):
        response = await client.post("/api/v1/charts", json={"input": "A,B\n1,2", "chart_type": "bubble"})
        assert response.status_code == 422


class TestAnalyze:
    """Tests for /api/v1/analyze."""

    @pytest.fixture
    def chat_client(self):
        return FakeChatClient([VALID_ANALYSIS_REPLY])

    @pytest.mark.asyncio
    async def test_analyze_prompt(self, client):
        response = await client.post("/api/v1/analyze", json={"prompt": "Analyze: A 1, B 2, C 3"})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["data"]["insights"] == ["B is highest"]
        assert data["metadata"]["cached"] is False

    @pytest.mark.asyncio
    async def test_analyze_template(self, client, chat_client):
        response = await client.post("/api/v1/analyze", json={
            "template_id": "data-summary",
            "template_params": {"data": {"A": 1, "B": 2}, "context": "weekly review"},
        })

        assert response.status_code == 200
        assert "Context: weekly review" in chat_client.calls[0]["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_analyze_requires_prompt_or_template(self, client):
        response = await client.post("/api/v1/analyze", json={"prompt": "  "})

        assert response.status_code == 400
        assert response.json()["code"] == "template_error"

    @pytest.mark.asyncio
    async def test_analyze_missing_template_params(self, client):
        response = await client.post("/api/v1/analyze", json={"template_id": "data-summary"})

        assert response.status_code == 400
        data = response.json()
        assert data["success"] is False
        assert data["error"]["code"] == "template_error"

    @pytest.mark.asyncio
    async def test_analyze_invalid_reply(self, client, chat_client):
        chat_client.outcomes = ['{"summary": {}}']

        response = await client.post("/api/v1/analyze", json={"prompt": "Analyze sales"})

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "invalid_response"


class TestTemplatesAndMetrics:
    """Tests for /api/v1/templates and /api/v1/metrics."""

    @pytest.mark.asyncio
    async def test_list_templates(self, client):
        response = await client.get("/api/v1/templates")

        assert response.status_code == 200
        assert [t["id"] for t in response.json()] == ["bar-chart", "line-chart", "data-summary"]

    @pytest.mark.asyncio
    async def test_list_templates_by_category(self, client):
        response = await client.get("/api/v1/templates", params={"category": "chart"})

        templates = response.json()
        assert [t["id"] for t in templates] == ["bar-chart", "line-chart"]
        assert templates[0]["parameters"][0] == {
            "name": "data",
            "type": "object",
            "required": True,
            "description": "Chart data with labels and values",
        }

    @pytest.mark.asyncio
    async def test_metrics(self, client):
        await client.post("/api/v1/charts", json={"input": "A,B,C\n10,20,30"})

        response = await client.get("/api/v1/metrics")

        assert response.status_code == 200
        data = response.json()
        assert data["provider"] == "fake"
        assert data["requests"]["successes"] == 1
        assert data["cache"]["entries"] == 1


class TestRequests:
    """Tests for /api/v1/requests."""

    @pytest.mark.asyncio
    async def test_active_requests(self, client, lifecycle):
        lifecycle.start_request("r-1", type="chart")
        lifecycle.start_request("r-2")
        lifecycle.complete_request("r-2")

        response = await client.get("/api/v1/requests")

        assert response.status_code == 200
        assert [r["id"] for r in response.json()] == ["r-1"]

    @pytest.mark.asyncio
    async def test_request_state(self, client, lifecycle):
        lifecycle.start_request("r-1", type="chart")
        lifecycle.update_progress("r-1", 50)

        response = await client.get("/api/v1/requests/r-1")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "processing"
        assert data["progress"] == 50
        assert data["type"] == "chart"

    @pytest.mark.asyncio
    async def test_unknown_request(self, client):
        response = await client.get("/api/v1/requests/missing")

        assert response.status_code == 404
        assert response.json()["code"] == "not_found"

    @pytest.mark.asyncio
    async def test_cancel(self, client, lifecycle):
        token = lifecycle.start_request("r-1")

        response = await client.post("/api/v1/requests/r-1/cancel")

        assert response.status_code == 200
        assert response.json() == {"request_id": "r-1", "cancelled": True, "status": "cancelled"}
        assert token.aborted is True

    @pytest.mark.asyncio
    async def test_cancel_finished_request(self, client, lifecycle):
        lifecycle.start_request("r-1")
        lifecycle.complete_request("r-1")

        response = await client.post("/api/v1/requests/r-1/cancel")

        assert response.json() == {"request_id": "r-1", "cancelled": False, "status": "completed"}

    @pytest.mark.asyncio
    async def test_cancel_unknown(self, client):
        response = await client.post("/api/v1/requests/missing/cancel")
        assert response.status_code == 404
