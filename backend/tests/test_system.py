def test_health_reports_counts(client, db_session, make_sow):
    make_sow(100)

    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json["status"] == "healthy"
    details = resp.json["checks"]["database"]["details"]
    assert details["sows"] == 1
    assert details["users"] == 1
    assert details["pending_financial_approval"] == 0


def test_version(client, db_session):
    resp = client.get("/version")
    assert resp.status_code == 200
    assert resp.json["api_version"] == "1.0.0"
    assert "SECRET_KEY" not in resp.get_data(as_text=True)
