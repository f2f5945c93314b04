from __future__ import annotations


async def test_api_root_and_health(client) -> None:
    root = await client.get("/api/v1")
    assert root.json() == {"name": "AnesGuardian", "version": "0.1.0", "status": "ok"}

    health = await client.get("/api/v1/health")
    assert health.status_code == 200
    body = health.json()
    assert body["status"] == "healthy"
    assert body["rate_limiter"] == "local"


async def test_sanitize_endpoint_cleans_patient_payload(client) -> None:
    response = await client.post(
        "/api/v1/sanitize",
        json={
            "name": "<script>alert(1)</script>Li Wei",
            "age": 45,
            "asaClass": "II",
            "medicalHistory": ["<img src=x onerror=alert('XSS')>", "Asthma"],
            "vitalSigns": {"heartRate": 72, "note": "  stable  "},
        },
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data == {
        "name": "Li Wei",
        "age": 45,
        "asaClass": "II",
        "medicalHistory": ["<img src=x>", "Asthma"],
        "vitalSigns": {"heartRate": 72, "note": "stable"},
    }


async def test_sanitize_endpoint_accepts_top_level_arrays(client) -> None:
    response = await client.post("/api/v1/sanitize", json=[" a ", 1, None, True])
    assert response.status_code == 200
    assert response.json()["data"] == ["a", 1, None, True]


async def test_sanitize_html_endpoint(client) -> None:
    response = await client.post(
        "/api/v1/sanitize/html",
        json={"html": '<p onclick="x()">Hi</p><script>bad()</script>'},
    )
    assert response.status_code == 200
    assert response.json() == {"html": "<p>Hi</p>bad()"}

    missing = await client.post("/api/v1/sanitize/html", json={})
    assert missing.status_code == 400
    body = missing.json()
    assert body["code"] == "VALIDATION_ERROR"
    assert [error["field"] for error in body["errors"]] == ["html"]


async def test_upload_check_returns_safe_filename(client) -> None:
    response = await client.post(
        "/api/v1/uploads/check",
        json={"filename": "../../etc/passwd.png", "contentType": "image/PNG", "size": 2048},
    )

    assert response.status_code == 200
    assert response.json() == {
        "filename": "__etc_passwd.png",
        "originalFilename": "../../etc/passwd.png",
        "contentType": "image/png",
        "size": 2048,
    }


async def test_upload_check_rejects_disallowed_type(client) -> None:
    response = await client.post(
        "/api/v1/uploads/check",
        json={"filename": "payload.exe", "contentType": "application/x-msdownload", "size": 2048},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "FILE_UPLOAD_ERROR"
    assert [error["field"] for error in body["errors"]] == ["contentType"]


async def test_contact_validation(client) -> None:
    valid = await client.post(
        "/api/v1/contacts/validate",
        json={"email": "anesthesia@hospital.cn", "phone": "13800138000"},
    )
    assert valid.status_code == 200
    assert valid.json() == {
        "valid": True,
        "contact": {"email": "anesthesia@hospital.cn", "phone": "13800138000"},
    }

    invalid = await client.post(
        "/api/v1/contacts/validate",
        json={"email": "anesthesia@hospital.cn", "phone": "12345"},
    )
    assert invalid.status_code == 400
    body = invalid.json()
    assert body["code"] == "VALIDATION_ERROR"
    assert [error["field"] for error in body["errors"]] == ["phone"]
