from datetime import date


def test_availability_defaults_to_base_currency(client, auth_headers, add_rate):
    add_rate(date(2024, 5, 1), "USD", "EUR", "0.9")

    response = client.get(
        "/api/exchange-rates/availability",
        params={"date": "2024-05-20", "currency": "EUR"},
        headers=auth_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["available"] is True
    assert data["exactMatch"] is False
    assert data["requiresManualInput"] is False
    assert data["severity"] == "outdated"
    assert data["rateDate"] == "2024-05-01"
    assert data["daysDifference"] == 19
    assert data["rateDisplay"]["from"] == "EUR"
    assert data["rateDisplay"]["to"] == "USD"


def test_availability_for_missing_pair(client, auth_headers):
    response = client.get(
        "/api/exchange-rates/availability",
        params={"date": "2024-05-20", "currency": "GBP", "to": "JPY"},
        headers=auth_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["available"] is False
    assert data["severity"] == "critical"
    assert data["requiresManualInput"] is True
    assert data["rate"] is None


def test_availability_validates_query(client, auth_headers):
    response = client.get(
        "/api/exchange-rates/availability",
        params={"date": "not-a-date", "currency": "EUR"},
        headers=auth_headers,
    )

    assert response.status_code == 400
    assert response.json()["kind"] == "validation_error"
