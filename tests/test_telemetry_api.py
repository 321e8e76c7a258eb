from fastapi.testclient import TestClient

from narramorph.main import app
from narramorph.modules.telemetry.service import PipelineTelemetry


def test_telemetry_summary_after_render() -> None:
    client = TestClient(app)
    payload = {
        "node_id": "a",
        "path": {"sequence": ["a"]},
        "nodes": {"a": {"id": "a", "character": "LastHuman", "temporal_value": 9, "current_content": "Rain again."}},
    }
    assert client.post("/api/v1/narrative/render", json=payload).status_code == 200

    body = client.get("/api/v1/telemetry/pipeline").json()

    assert body["renders"] == 1
    assert body["render_failures"] == 0
    assert body["avg_render_latency_ms"] >= 0.0
    assert body["guard_trips"] == 0


def test_telemetry_reset() -> None:
    client = TestClient(app)
    app.state.pipeline.telemetry.record_guard_trip("apply_all")

    assert client.get("/api/v1/telemetry/pipeline").json()["guard_trips_by_stage"] == {"apply_all": 1}
    assert client.post("/api/v1/telemetry/pipeline/reset").json() == {"status": "ok"}
    assert client.get("/api/v1/telemetry/pipeline").json()["guard_trips"] == 0


def test_latency_percentiles() -> None:
    telemetry = PipelineTelemetry()
    for latency in range(1, 21):
        telemetry.record_render(latency_ms=float(latency))
    telemetry.record_render_failure()
    telemetry.record_application_failure("apply")
    telemetry.record_application_failure("apply")

    summary = telemetry.summary()

    assert summary["renders"] == 20
    assert summary["render_failures"] == 1
    assert summary["avg_render_latency_ms"] == 10.5
    assert summary["p95_render_latency_ms"] == 19.0
    assert summary["application_failures"] == 2
    assert summary["application_failures_by_stage"] == {"apply": 2}
