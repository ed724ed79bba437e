from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import store
from database import utcnow
from tests.helpers import create_link, register_and_login

IPHONE = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile/15E148 Safari/604.1"


def visit(client, code, **params):
    return client.get(f"/{code}", params=params, follow_redirects=False)


def api_visit(client, code, **params):
    return client.get(f"/api/redirect/{code}", params=params, follow_redirects=False)


class TestCreate:

    def test_anonymous_create(self, client):
        response = client.post("/api/urls", json={"originalUrl": "https://example.com/page"})
        assert response.status_code == 201
        data = response.json()
        assert len(data["shortCode"]) == 8
        assert data["shortUrl"].endswith("/" + data["shortCode"])
        assert data["originalUrl"] == "https://example.com/page"
        assert data["aiSuggestions"] == ""
        assert data["riskLevel"] == "low"
        assert data["expiresAt"] is None
        assert data["qrCode"].startswith("data:image/png;base64,")
        assert "isDuplicate" not in data

    def test_anonymous_cannot_use_advanced_features(self, client):
        for extra in ({"customAlias": "mine"}, {"password": "x"}, {"expiresAt": "2030-01-01T00:00:00Z"}):
            response = client.post("/api/urls", json={"originalUrl": "https://example.com", **extra})
            assert response.status_code == 401

    def test_url_validation(self, client):
        assert client.post("/api/urls", json={}).status_code == 400
        assert client.post("/api/urls", json={"originalUrl": "not a url"}).status_code == 400
        assert client.post("/api/urls", json={"originalUrl": "ftp://example.com/file"}).status_code == 400
        assert client.post("/api/urls", json={"originalUrl": "javascript:alert(1)"}).status_code == 400
        assert client.post("/api/urls", json={"originalUrl": "http://[::1/page"}).status_code == 400

    def test_oversized_link_password_rejected(self, user_client, db):
        response = user_client.post(
            "/api/urls", json={"originalUrl": "https://example.com/page", "password": "x" * 5000}
        )
        assert response.status_code == 400
        assert db.conn.execute("SELECT COUNT(*) FROM links").fetchone()[0] == 0

    def test_bare_domain_gets_https(self, client):
        assert create_link(client, "example.com/docs")["originalUrl"] == "https://example.com/docs"

    def test_suspicious_urls_rejected(self, client):
        for url in ("https://bit.ly/abc", "https://example.com/setup.exe"):
            response = client.post("/api/urls", json={"originalUrl": url})
            assert response.status_code == 400

    def test_signed_in_create_with_alias(self, user_client):
        data = create_link(user_client, customAlias="my-alias", tags=["docs"])
        assert data["shortCode"] == "my-alias"
        assert data["aiSuggestions"].startswith("URL analysis complete")
        assert data["riskLevel"] == "low"

    def test_alias_collision_creates_nothing(self, user_client, db):
        create_link(user_client, "https://example.com/one", customAlias="abc")
        before = db.conn.execute("SELECT COUNT(*) FROM links").fetchone()[0]

        response = user_client.post(
            "/api/urls", json={"originalUrl": "https://example.com/two", "customAlias": "abc"}
        )
        assert response.status_code == 400
        assert db.conn.execute("SELECT COUNT(*) FROM links").fetchone()[0] == before

    def test_alias_colliding_with_generated_code(self, user_client):
        code = create_link(user_client, "https://example.com/one")["shortCode"]
        response = user_client.post(
            "/api/urls", json={"originalUrl": "https://example.com/two", "customAlias": code}
        )
        assert response.status_code == 400

    def test_duplicate_for_same_user(self, user_client):
        first = create_link(user_client, "https://github.com/org/repo")
        response = user_client.post("/api/urls", json={"originalUrl": "https://github.com/org/repo"})
        assert response.status_code == 200
        data = response.json()
        assert data["isDuplicate"] is True
        assert data["shortCode"] == first["shortCode"]
        assert "GitHub repository" in data["aiSuggestions"]

    def test_anonymous_links_are_never_deduplicated(self, client):
        first = create_link(client)
        second = create_link(client)
        assert first["shortCode"] != second["shortCode"]


class TestRedirect:

    def test_public_redirect_and_click_count(self, user_client, db):
        data = create_link(user_client)
        response = visit(user_client, data["shortCode"])
        assert response.status_code == 302
        assert response.headers["location"] == "https://example.com/page"

        link = store.find_by_key(db, data["shortCode"])
        assert link.clicks == 1
        assert store.count_clicks(db, link.id) == 1

    def test_alias_and_code_both_resolve(self, user_client, db):
        create_link(user_client, customAlias="promo")
        response = visit(user_client, "promo")
        assert response.headers["location"] == "https://example.com/page"

    def test_unknown_code(self, client):
        assert visit(client, "nope1234").headers["location"] == "/404"
        response = api_visit(client, "nope1234")
        assert response.status_code == 404
        assert response.json() == {"error": "URL not found"}

    def test_disabled_link(self, client, db, link):
        db.conn.execute("UPDATE links SET is_active = 0 WHERE id = ?", (link.id,))
        db.conn.commit()

        assert visit(client, link.short_code).headers["location"] == "/404"
        assert api_visit(client, link.short_code).status_code == 403
        assert store.get_link(db, link.id).clicks == 0

    def test_expired_link(self, user_client):
        past = (utcnow() - timedelta(days=1)).isoformat()
        data = create_link(user_client, expiresAt=past, password="Hunter2")

        assert visit(user_client, data["shortCode"]).headers["location"] == "/expired"
        assert visit(user_client, data["shortCode"], password="Hunter2").headers["location"] == "/expired"
        assert api_visit(user_client, data["shortCode"]).status_code == 410

    def test_password_protected_link(self, user_client, db):
        code = create_link(user_client, password="Hunter2")["shortCode"]

        assert visit(user_client, code).headers["location"] == f"/password/{code}"
        assert visit(user_client, code, password="hunter2").headers["location"] == \
            f"/password/{code}?error=invalid"
        assert store.find_by_key(db, code).clicks == 0

        response = visit(user_client, code, password="Hunter2")
        assert response.headers["location"] == "https://example.com/page"
        assert store.find_by_key(db, code).clicks == 1

    def test_json_password_responses(self, user_client):
        code = create_link(user_client, password="Hunter2")["shortCode"]

        response = api_visit(user_client, code)
        assert response.status_code == 401
        assert response.json() == {"error": "Password required", "requiresPassword": True, "shortCode": code}

        response = api_visit(user_client, code, password="wrong")
        assert response.status_code == 401
        assert response.json()["error"] == "Invalid password"

        response = api_visit(user_client, code, password="Hunter2")
        assert response.status_code == 302
        assert response.headers["location"] == "https://example.com/page"

    def test_oversized_password_attempt(self, user_client):
        code = create_link(user_client, password="Hunter2")["shortCode"]

        response = api_visit(user_client, code, password="x" * 5000)
        assert response.status_code == 401
        assert response.json()["error"] == "Invalid password"
        assert visit(user_client, code, password="x" * 5000).headers["location"] == \
            f"/password/{code}?error=invalid"

    def test_store_unavailable(self, client, db, link, tmp_path):
        db.close()
        db.path = str(tmp_path / "missing" / "links.db")

        response = api_visit(client, link.short_code)
        assert response.status_code == 503
        assert visit(client, link.short_code).headers["location"] == "/error"

    def test_query_failure_is_unavailable(self, client, db, link):
        db.conn.execute("DROP TABLE clicks")
        db.conn.execute("DROP TABLE links")

        response = api_visit(client, link.short_code)
        assert response.status_code == 503
        assert response.json() == {"detail": "Service temporarily unavailable"}

    def test_concurrent_visits_are_all_counted(self, client, db, link):
        with ThreadPoolExecutor(max_workers=8) as pool:
            responses = list(pool.map(lambda _: visit(client, link.short_code), range(20)))

        assert all(response.status_code == 302 for response in responses)
        assert store.get_link(db, link.id).clicks == 20
        assert store.count_clicks(db, link.id) == 20

    def test_counter_matches_visits_when_recording_fails(self, client, db, link, monkeypatch):
        original_insert = store.insert_click
        calls = []

        def flaky_insert(*args, **kwargs):
            calls.append(1)
            if len(calls) % 2:
                raise RuntimeError("store down")
            return original_insert(*args, **kwargs)

        monkeypatch.setattr(store, "insert_click", flaky_insert)
        for _ in range(6):
            assert visit(client, link.short_code).status_code == 302

        assert store.get_link(db, link.id).clicks == 6
        assert store.count_clicks(db, link.id) == 3

    def test_click_metadata_recorded(self, client, db, link):
        client.get(
            f"/{link.short_code}",
            headers={"User-Agent": IPHONE, "Referer": "https://t.co/abc"},
            follow_redirects=False,
        )
        row = db.conn.execute("SELECT * FROM clicks WHERE link_id = ?", (link.id,)).fetchone()
        assert row["device"] == "mobile"
        assert row["browser"] == "Safari"
        assert row["os"] == "macOS"
        assert row["referer"] == "https://t.co/abc"
        assert row["ip"] == "testclient"


class TestOwnedLinks:

    def test_requires_sign_in(self, client, link):
        assert client.get("/api/urls").status_code == 401
        assert client.delete(f"/api/urls/{link.id}").status_code == 401
        assert client.get(f"/api/analytics/{link.id}").status_code == 401

    def test_list_and_get(self, user_client):
        create_link(user_client, "https://example.com/1")
        second = create_link(user_client, "https://example.com/2")

        data = user_client.get("/api/urls", params={"limit": 1}).json()
        assert data["pagination"] == {"page": 1, "limit": 1, "total": 2, "pages": 2}
        assert data["urls"][0]["shortCode"] == second["shortCode"]

        link_id = data["urls"][0]["id"]
        url = user_client.get(f"/api/urls/{link_id}").json()["url"]
        assert url["originalUrl"] == "https://example.com/2"

    def test_delete_cascades_clicks(self, user_client, db):
        code = create_link(user_client)["shortCode"]
        visit(user_client, code)
        visit(user_client, code)
        link = store.find_by_key(db, code)
        assert store.count_clicks(db, link.id) == 2

        response = user_client.delete(f"/api/urls/{link.id}")
        assert response.status_code == 200
        assert store.get_link(db, link.id) is None
        assert store.count_clicks(db, link.id) == 0
        assert user_client.delete(f"/api/urls/{link.id}").status_code == 404

    def test_other_users_links_are_hidden(self, user_client, db):
        code = create_link(user_client)["shortCode"]
        link = store.find_by_key(db, code)

        register_and_login(user_client, email="other@example.com", name="Other")
        assert user_client.get(f"/api/urls/{link.id}").status_code == 404
        assert user_client.delete(f"/api/urls/{link.id}").status_code == 404
        assert user_client.get(f"/api/analytics/{link.id}").status_code == 404
        assert store.get_link(db, link.id) is not None

    def test_regenerate_qr(self, user_client, db):
        code = create_link(user_client)["shortCode"]
        link = store.find_by_key(db, code)
        response = user_client.post(f"/api/urls/{link.id}/qr")
        assert response.status_code == 200
        assert response.json()["qrCode"].startswith("data:image/png;base64,")

    def test_link_analytics(self, user_client, db):
        code = create_link(user_client)["shortCode"]
        user_client.get(f"/{code}", headers={"User-Agent": IPHONE}, follow_redirects=False)

        link = store.find_by_key(db, code)
        data = user_client.get(f"/api/analytics/{link.id}", params={"period": "30d"}).json()
        assert data["url"]["totalClicks"] == 1
        assert data["analytics"]["period"] == "30d"
        assert data["analytics"]["totalClicks"] == 1
        assert data["analytics"]["charts"]["devices"] == [{"name": "mobile", "value": 1}]
        assert data["analytics"]["charts"]["referrers"] == [{"name": "Direct", "value": 1}]

    def test_analytics_with_malformed_referer(self, user_client, db):
        code = create_link(user_client)["shortCode"]
        user_client.get(f"/{code}", headers={"Referer": "http://[oops/"}, follow_redirects=False)

        link = store.find_by_key(db, code)
        response = user_client.get(f"/api/analytics/{link.id}", params={"period": "all"})
        assert response.status_code == 200
        assert response.json()["analytics"]["charts"]["referrers"] == [{"name": "Unknown", "value": 1}]

    def test_overview(self, user_client):
        first = create_link(user_client, "https://example.com/1")["shortCode"]
        create_link(user_client, "https://example.com/2")
        visit(user_client, first)
        visit(user_client, first)
        visit(user_client, first)

        data = user_client.get("/api/analytics/overview").json()
        assert data["totalUrls"] == 2
        assert data["totalClicks"] == 3
        assert data["avgClicksPerUrl"] == 1.5
        assert [item["shortCode"] for item in data["topPerformingUrls"]] == [first]
        assert len(data["recentActivity"]) == 2


class TestPages:

    def test_password_page(self, client):
        response = client.get("/password/abc12345", params={"error": "invalid"})
        assert response.status_code == 200
        assert "password protected" in response.text
        assert "Invalid password" in response.text
        assert 'action="/abc12345"' in response.text

    def test_status_pages(self, client):
        assert client.get("/404").status_code == 404
        assert client.get("/expired").status_code == 410
        assert client.get("/error").status_code == 200
        assert client.get("/").status_code == 200
