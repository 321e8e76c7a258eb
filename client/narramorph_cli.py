from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import httpx
import typer

app = typer.Typer(help="Narramorph pipeline CLI")
cache_app = typer.Typer(help="Cache commands")
app.add_typer(cache_app, name="cache")

DEFAULT_BACKEND_URL = "http://127.0.0.1:8000"
BACKEND_URL_ENV = "NARRAMORPH_BACKEND_URL"


def backend_url() -> str:
    return os.getenv(BACKEND_URL_ENV, DEFAULT_BACKEND_URL).rstrip("/")


def request(
    method: str,
    endpoint: str,
    *,
    json_body: dict[str, Any] | None = None,
    params: dict[str, Any] | None = None,
) -> httpx.Response:
    url = f"{backend_url()}{endpoint}"
    with httpx.Client(timeout=20.0) as client:
        return client.request(method, url, json=json_body, params=params)


def load_scenario(path: Path) -> dict[str, Any]:
    """Read a scenario file holding a reader ``path`` and a ``nodes`` registry."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        raise typer.BadParameter(f"cannot read scenario {path}: {exc}") from exc
    if not isinstance(data, dict) or not isinstance(data.get("path"), dict):
        raise typer.BadParameter(f"scenario {path} must be an object with a 'path' object")
    nodes = data.get("nodes") or {}
    if isinstance(nodes, list):
        nodes = {str(node.get("id")): node for node in nodes if isinstance(node, dict)}
    return {"path": data["path"], "nodes": nodes}


def response_detail_code(resp: httpx.Response) -> str | None:
    try:
        payload = resp.json()
    except ValueError:
        return None
    detail = payload.get("detail") if isinstance(payload, dict) else None
    if isinstance(detail, dict):
        code = detail.get("code")
        if isinstance(code, str) and code.strip():
            return code.strip()
    return None


def _handle_response(resp: httpx.Response, action: str) -> dict[str, Any]:
    if resp.status_code >= 400:
        code = response_detail_code(resp)
        label = f" [{code}]" if code else ""
        typer.echo(f"{action} failed ({resp.status_code}){label}: {resp.text}")
        raise typer.Exit(code=1)
    return resp.json()


def format_patterns(analysis: dict[str, Any]) -> list[str]:
    lines = []
    for pattern in analysis.get("significant_patterns", []):
        lines.append(f"  - {pattern.get('type')} ({float(pattern.get('strength', 0.0)):.2f}): {pattern.get('description')}")
    return lines


@app.command()
def health() -> None:
    body = _handle_response(request("GET", "/health"), "health")
    typer.echo(f"ok: {body}")


@app.command()
def variants(
    source: Path = typer.Argument(..., exists=True, readable=True, help="Annotated source text"),
    visit_count: int | None = typer.Option(None, "--visit-count", help="Select the variant for this visit count"),
) -> None:
    raw = source.read_text(encoding="utf-8")
    if visit_count is None:
        body = _handle_response(request("POST", "/api/v1/narrative/variants/parse", json_body={"raw": raw}), "variants")
        typer.echo(f"base: {body.get('base')}")
        for count, text in sorted(body.get("visit_count_variants", {}).items(), key=lambda item: int(item[0])):
            typer.echo(f"[{count}]: {text}")
        for name, text in body.get("section_variants", {}).items():
            typer.echo(f"{name}: {text}")
        return
    payload = {"raw": raw, "context": {"visit_count": visit_count}}
    body = _handle_response(request("POST", "/api/v1/narrative/variants/select", json_body=payload), "variants")
    typer.echo(body.get("content", ""))


@app.command()
def analyze(scenario: Path = typer.Argument(..., exists=True, readable=True)) -> None:
    body = _handle_response(request("POST", "/api/v1/narrative/analyze", json_body=load_scenario(scenario)), "analyze")
    fingerprint = body.get("fingerprint", {})
    typer.echo(f"fingerprint: {fingerprint.get('fingerprint_id')}")
    typer.echo(f"exploration: {fingerprint.get('exploration_style')}")
    typer.echo(f"temporal: {fingerprint.get('temporal_preference')}")
    typer.echo(f"approach: {fingerprint.get('narrative_approach')}")
    lines = format_patterns(body)
    if lines:
        typer.echo("patterns:")
        for line in lines:
            typer.echo(line)


@app.command()
def render(
    scenario: Path = typer.Argument(..., exists=True, readable=True),
    node_id: str = typer.Option(..., "--node-id", help="Node to render"),
    show_transformations: bool = typer.Option(False, "--show-transformations"),
) -> None:
    payload = {"node_id": node_id, **load_scenario(scenario)}
    body = _handle_response(request("POST", "/api/v1/narrative/render", json_body=payload), "render")
    typer.echo(body.get("content", ""))
    if show_transformations:
        typer.echo("transformations:")
        for item in body.get("transformations", []):
            typer.echo(f"  - {item.get('type')} '{item.get('selector')}' ({item.get('priority')})")


@cache_app.command("stats")
def cache_stats() -> None:
    body = _handle_response(request("GET", "/api/v1/narrative/cache/stats"), "cache stats")
    typer.echo(json.dumps(body, ensure_ascii=False, indent=2))


@cache_app.command("invalidate")
def cache_invalidate() -> None:
    body = _handle_response(request("POST", "/api/v1/narrative/cache/invalidate"), "cache invalidate")
    typer.echo(f"rule_set_version: {body.get('rule_set_version')}")


if __name__ == "__main__":
    app()
