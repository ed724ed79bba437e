from datetime import datetime, timezone

PASSWORD = "Secret123"


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def register_and_login(client, email="owner@example.com", name="Owner"):
    client.cookies.clear()
    response = client.post("/auth/register", json={"name": name, "email": email, "password": PASSWORD})
    assert response.status_code == 201, response.text
    response = client.post("/auth/login", json={"email": email, "password": PASSWORD})
    assert response.status_code == 200, response.text
    return response.json()


def create_link(client, original_url="https://example.com/page", **fields):
    response = client.post("/api/urls", json={"originalUrl": original_url, **fields})
    assert response.status_code in (200, 201), response.text
    return response.json()
