from __future__ import annotations

import base64
from datetime import datetime, timedelta, timezone

from rulebooks.db import RulebookStatus
from rulebooks.ingest import split_pdf


def _create(client, title: str = "Catan", year: int | None = 1995) -> dict:
    response = client.post("/api/rulebooks/create-upload", json={"title": title, "year": year})
    assert response.status_code == 200, response.text
    return response.json()


def _ingest_pages(client, rulebook_id: str, numbers: list[int], *, batch_index: int = 0, last: bool = True, total: int | None = None):
    return client.post(
        "/api/rulebooks/ingest-batch",
        json={
            "rulebookId": rulebook_id,
            "batchIndex": batch_index,
            "pages": [
                {"pageNumber": n, "text": f"[SECTION: TRADING]\nPage {n}: trade brick for wool."}
                for n in numbers
            ],
            "isLastBatch": last,
            "totalPages": total if total is not None else len(numbers),
        },
    )


def test_liveness_endpoints(client) -> None:
    assert client.get("/").text == "ok"
    assert client.get("/healthz").text == "ok"


def test_create_upload_returns_pending_rulebook(client, repository) -> None:
    body = _create(client)

    assert set(body) == {"rulebookId", "slug", "uploadUrl"}
    assert body["slug"].startswith("catan-")
    assert body["uploadUrl"].startswith("http://testserver/storage/upload/")
    stored = repository.get(body["rulebookId"])
    assert stored.status is RulebookStatus.PENDING_INGEST
    assert stored.year == 1995


def test_create_upload_gives_up_after_slug_collisions(client, monkeypatch) -> None:
    monkeypatch.setattr("rulebooks.services.rulebooks.generate_slug", lambda title: "catan-aaaaaa")
    first = _create(client)

    response = client.post("/api/rulebooks/create-upload", json={"title": "Catan", "year": 1995})

    assert first["slug"] == "catan-aaaaaa"
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to generate unique slug"}


def test_create_upload_requires_title(client) -> None:
    response = client.post("/api/rulebooks/create-upload", json={"title": "   "})

    assert response.status_code == 400
    assert response.json() == {"error": "Title is required"}


def test_missing_fields_use_the_error_envelope(client) -> None:
    response = client.post("/api/rulebooks/ingest-batch", json={"batchIndex": 0})

    assert response.status_code == 400
    assert "rulebookId" in response.json()["error"]


def test_raw_upload_then_download(client, make_pdf) -> None:
    body = _create(client)
    pdf = make_pdf(2)
    token_path = body["uploadUrl"].replace("http://testserver", "")

    upload = client.put(token_path, content=pdf, headers={"Content-Type": "application/pdf"})
    assert upload.status_code == 200
    assert upload.json() == {"path": f"pdfs/{body['rulebookId']}.pdf"}

    download = client.get(f"/storage/files/pdfs/{body['rulebookId']}.pdf")
    assert download.status_code == 200
    assert download.content == pdf

    replay = client.put(token_path, content=pdf)
    assert replay.status_code == 404


def test_process_page_runs_the_extractor_once(client, extractor, make_pdf) -> None:
    page = split_pdf(make_pdf(3)).pages[2]

    response = client.post(
        "/api/rulebooks/process-page",
        json={"pageNumber": 3, "pdfBase64": page.pdf_base64},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["pageNumber"] == 3
    assert body["processedText"].startswith("PAGE_INDEX: 3")
    assert extractor.calls == [3]


def test_process_page_rejects_bad_base64(client) -> None:
    response = client.post("/api/rulebooks/process-page", json={"pageNumber": 1, "pdfBase64": "***"})

    assert response.status_code == 400


def test_ingest_ask_and_status_flow(client) -> None:
    body = _create(client)
    rulebook_id = body["rulebookId"]

    ingest = _ingest_pages(client, rulebook_id, [1, 2, 3])
    assert ingest.status_code == 200
    assert ingest.json() == {"success": True, "ingestedPages": 3, "status": "ready"}

    status = client.get(f"/api/rulebooks/{body['slug']}").json()
    assert status["status"] == "ready"
    assert status["pageCount"] == 3
    assert status["isStale"] is False

    answer = client.post("/api/rulebooks/ask", json={"rulebookId": rulebook_id, "question": "Can I trade brick?"})
    assert answer.status_code == 200
    payload = answer.json()
    assert 'from the section "TRADING"' in payload["answer"]
    assert len(payload["citations"]) == 1
    assert payload["citations"][0]["pageNumber"] in {1, 2, 3}


def test_ingest_unknown_rulebook_is_404(client) -> None:
    response = _ingest_pages(client, "does-not-exist", [1])

    assert response.status_code == 404
    assert response.json() == {"error": "Rulebook not found"}


def test_later_batch_before_index_is_400(client, repository) -> None:
    body = _create(client)

    response = _ingest_pages(client, body["rulebookId"], [26], batch_index=1, last=False)

    assert response.status_code == 400
    assert repository.get(body["rulebookId"]).status is RulebookStatus.ERROR


def test_ask_requires_ready_rulebook(client) -> None:
    body = _create(client)

    response = client.post("/api/rulebooks/ask", json={"rulebookId": body["rulebookId"], "question": "Who starts?"})

    assert response.status_code == 400
    assert response.json() == {"error": "Rulebook is not ready for queries"}


def test_upload_assets_sets_urls(client, repository) -> None:
    body = _create(client)

    response = client.post(
        "/api/rulebooks/upload-assets",
        data={"rulebookId": body["rulebookId"]},
        files={"thumbnail": ("cover.webp", b"RIFF....WEBP", "image/webp")},
    )

    assert response.status_code == 200
    urls = response.json()
    assert urls["thumbnailUrl"].endswith(f"/storage/files/thumbnails/{body['rulebookId']}.webp")
    assert urls["pdfUrl"].endswith(f"/storage/files/pdfs/{body['rulebookId']}.pdf")
    stored = repository.get(body["rulebookId"])
    assert stored.thumbnail_url == urls["thumbnailUrl"]


def test_upload_assets_rejects_unsupported_type(client) -> None:
    body = _create(client)

    response = client.post(
        "/api/rulebooks/upload-assets",
        data={"rulebookId": body["rulebookId"]},
        files={"thumbnail": ("cover.bmp", b"BM", "image/bmp")},
    )

    assert response.status_code == 400


def test_mark_error_endpoint(client, repository) -> None:
    body = _create(client)

    response = client.post(
        "/api/rulebooks/mark-error",
        json={"rulebookId": body["rulebookId"], "message": "Page 4 failed"},
    )

    assert response.json() == {"status": "error"}
    stored = repository.get(body["rulebookId"])
    assert stored.status is RulebookStatus.ERROR
    assert stored.error_message == "Page 4 failed"


def test_search_returns_ready_rulebooks_only(client) -> None:
    ready = _create(client, title="Twilight Imperium")
    _ingest_pages(client, ready["rulebookId"], [1])
    _create(client, title="Twilight Struggle")

    results = client.get("/api/rulebooks/search", params={"q": "twilight"}).json()

    assert [item["slug"] for item in results] == [ready["slug"]]
    assert client.get("/api/rulebooks/search", params={"q": " "}).json() == []


def test_status_of_unknown_slug_is_404(client) -> None:
    assert client.get("/api/rulebooks/nope-000000").status_code == 404


def test_stalled_ingestion_is_reported_stale(client, repository) -> None:
    body = _create(client)
    repository.update(body["rulebookId"], status=RulebookStatus.INGESTING)
    # Bypass update() so updated_at is not refreshed.
    with repository.database.session_factory() as session:
        from rulebooks.db import Rulebook

        row = session.get(Rulebook, body["rulebookId"])
        row.updated_at = datetime.now(timezone.utc) - timedelta(hours=1)
        session.commit()

    status = client.get(f"/api/rulebooks/{body['slug']}").json()

    assert status["status"] == "ingesting"
    assert status["isStale"] is True


def test_process_page_base64_payload_is_decoded(client, extractor) -> None:
    encoded = base64.b64encode(b"%PDF-1.4 single page").decode("ascii")

    response = client.post("/api/rulebooks/process-page", json={"pageNumber": 9, "pdfBase64": encoded})

    assert response.status_code == 200
    assert extractor.calls == [9]


def test_search_shows_the_cover_as_game_image(client) -> None:
    body = _create(client, title="Wingspan", year=2019)
    _ingest_pages(client, body["rulebookId"], [1])
    urls = client.post(
        "/api/rulebooks/upload-assets",
        data={"rulebookId": body["rulebookId"]},
        files={"thumbnail": ("cover.png", b"\x89PNG\r\n\x1a\nfake", "image/png")},
    ).json()

    results = client.get("/api/rulebooks/search", params={"q": "wings"}).json()

    assert [item["slug"] for item in results] == [body["slug"]]
    assert results[0]["thumbnailUrl"] == urls["thumbnailUrl"]
    assert results[0]["gameImageUrl"] == urls["thumbnailUrl"]
