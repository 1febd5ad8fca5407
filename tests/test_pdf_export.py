from datetime import datetime

from conftest import post_log

from pdf_export import render_log_pdf


def test_render_log_pdf_handles_long_descriptions():
    log = {
        "date": datetime(2024, 5, 1),
        "project": "Site A",
        "start_time": datetime(2024, 5, 1, 8),
        "end_time": datetime(2024, 5, 1, 16),
        "status": "approved",
        "employees": [],
        "work_description": "Poured concrete. " * 400,
    }
    pdf = render_log_pdf(log, "Tal Leader")
    assert pdf.startswith(b"%PDF")
    assert pdf.rstrip().endswith(b"%%EOF")


def test_export_route(client, leader, other_leader, manager):
    log_id = post_log(client, leader).json()["id"]

    res = client.get(f"/api/logs/{log_id}/export-pdf", headers=manager.headers)
    assert res.status_code == 200
    assert res.headers["content-type"] == "application/pdf"
    assert res.headers["content-disposition"] == f"attachment; filename=daily-log-{log_id}.pdf"
    assert res.content.startswith(b"%PDF")

    assert client.get(f"/api/logs/{log_id}/export-pdf", headers=leader.headers).status_code == 200
    assert client.get(f"/api/logs/{log_id}/export-pdf", headers=other_leader.headers).status_code == 403
    assert client.get("/api/logs/000000000000000000000000/export-pdf", headers=manager.headers).status_code == 404
