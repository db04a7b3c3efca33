"""
Bug API — CRUD, triage and lifecycle over HTTP.
"""

import pytest


def _create(client, headers, **overrides):
    payload = {"title": "Checkout fails", "description": "500 on submit", **overrides}
    res = client.post("/api/v1/bugs", json=payload, headers=headers)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


class TestCreateAndRead:
    def test_create_open_bug(self, client, auth_headers):
        bug = _create(client, auth_headers, tags=["checkout"])
        assert bug["status"] == "OPEN"
        assert bug["reported_by"] == "qa-lead"
        assert bug["tags"] == ["checkout"]
        assert bug["valid_next_states"] == ["DEFERRED", "INVALID", "TRIAGED"]

    def test_create_triaged_in_one_call(self, client, auth_headers):
        bug = _create(client, auth_headers, severity="high", priority="p1", assigned_to="dev-1")
        assert bug["status"] == "TRIAGED"
        assert bug["severity"] == "HIGH"
        assert bug["priority"] == "P1"

    @pytest.mark.parametrize("given, missing", [
        ({"severity": "CRITICAL"}, "priority"),
        ({"priority": "P0"}, "severity"),
    ])
    def test_half_triage_on_create_is_422(self, client, auth_headers, given, missing):
        res = client.post("/api/v1/bugs", json={"title": "Crash", "description": "DB wiped", **given},
                          headers=auth_headers)
        assert res.status_code == 422
        assert res.get_json()["details"] == {missing: "required"}
        assert client.get("/api/v1/bugs", headers=auth_headers).get_json()["total"] == 0

    def test_missing_title_is_422(self, client, auth_headers):
        res = client.post("/api/v1/bugs", json={"description": "d"}, headers=auth_headers)
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_RULE"

    @pytest.mark.parametrize("payload", [
        {"title": 12, "description": "d"},
        {"title": "t", "description": "d", "tags": "ui"},
    ])
    def test_malformed_fields_are_400(self, client, auth_headers, payload):
        assert client.post("/api/v1/bugs", json=payload, headers=auth_headers).status_code == 400

    def test_non_object_body_is_400(self, client, auth_headers):
        res = client.post("/api/v1/bugs", json=["not", "an", "object"], headers=auth_headers)
        assert res.status_code == 400

    def test_unknown_requirement_link_is_404(self, client, auth_headers):
        res = client.post(
            "/api/v1/bugs",
            json={"title": "t", "description": "d", "linked_requirement_id": 777},
            headers=auth_headers,
        )
        assert res.status_code == 404

    def test_get_missing_is_404(self, client, auth_headers):
        res = client.get("/api/v1/bugs/404", headers=auth_headers)
        assert res.status_code == 404
        assert res.get_json()["error"] == "Bug not found"

    def test_list_filters_and_paginates(self, client, auth_headers):
        _create(client, auth_headers, title="a")
        _create(client, auth_headers, title="b", severity="CRITICAL", priority="P0")
        _create(client, auth_headers, title="c", severity="LOW", priority="P3")

        body = client.get("/api/v1/bugs?severity=critical", headers=auth_headers).get_json()
        assert [b["title"] for b in body["items"]] == ["b"]

        body = client.get("/api/v1/bugs?limit=2", headers=auth_headers).get_json()
        assert body["total"] == 3
        assert len(body["items"]) == 2

    def test_negative_limit_returns_empty_page(self, client, auth_headers):
        _create(client, auth_headers, title="a")
        _create(client, auth_headers, title="b")
        body = client.get("/api/v1/bugs?limit=-1", headers=auth_headers).get_json()
        assert body["total"] == 2
        assert body["items"] == []

    def test_invalid_filter_is_422(self, client, auth_headers):
        assert client.get("/api/v1/bugs?status=LOST", headers=auth_headers).status_code == 422


class TestTriage:
    def test_triage(self, client, auth_headers):
        bug = _create(client, auth_headers)
        res = client.post(
            f"/api/v1/bugs/{bug['id']}/triage",
            json={"severity": "CRITICAL", "priority": "P0"},
            headers=auth_headers,
        )
        assert res.status_code == 200
        assert res.get_json()["blocks_release"] is True

    def test_triage_requires_severity_and_priority(self, client, auth_headers):
        bug = _create(client, auth_headers)
        res = client.post(f"/api/v1/bugs/{bug['id']}/triage", json={"severity": "LOW"},
                          headers=auth_headers)
        assert res.status_code == 400
        assert res.get_json()["details"] == {"priority": "required"}

    def test_triage_twice_is_422(self, client, auth_headers):
        bug = _create(client, auth_headers, severity="LOW", priority="P3")
        res = client.post(
            f"/api/v1/bugs/{bug['id']}/triage",
            json={"severity": "HIGH", "priority": "P1"},
            headers=auth_headers,
        )
        assert res.status_code == 422

    def test_bad_severity_is_422(self, client, auth_headers):
        bug = _create(client, auth_headers)
        res = client.post(
            f"/api/v1/bugs/{bug['id']}/triage",
            json={"severity": "APOCALYPTIC", "priority": "P0"},
            headers=auth_headers,
        )
        assert res.status_code == 422

    def test_patch_triage(self, client, auth_headers):
        bug = _create(client, auth_headers, severity="LOW", priority="P3")
        res = client.patch(f"/api/v1/bugs/{bug['id']}/triage", json={"priority": "P1"},
                           headers=auth_headers)
        assert res.status_code == 200
        assert res.get_json()["priority"] == "P1"
        assert res.get_json()["severity"] == "LOW"

    def test_patch_triage_empty_body_is_400(self, client, auth_headers):
        bug = _create(client, auth_headers)
        assert client.patch(f"/api/v1/bugs/{bug['id']}/triage", json={},
                            headers=auth_headers).status_code == 400


class TestTransitions:
    def test_full_lifecycle(self, client, auth_headers):
        bug = _create(client, auth_headers, severity="MEDIUM", priority="P2")
        url = f"/api/v1/bugs/{bug['id']}/transition"
        for action, expected in [("start", "IN_PROGRESS"), ("resolve", "RESOLVED"),
                                 ("verify", "VERIFIED"), ("close", "CLOSED")]:
            res = client.post(url, json={"action": action, "reason": "done"}, headers=auth_headers)
            assert res.status_code == 200, res.get_json()
            assert res.get_json()["status"] == expected

    def test_resolution_notes_accepted(self, client, auth_headers):
        bug = _create(client, auth_headers, severity="MEDIUM", priority="P2")
        url = f"/api/v1/bugs/{bug['id']}/transition"
        client.post(url, json={"action": "start"}, headers=auth_headers)
        res = client.post(url, json={"action": "resolve", "resolution_notes": "patched"},
                          headers=auth_headers)
        assert res.get_json()["resolution_notes"] == "patched"

    def test_illegal_transition_is_409(self, client, auth_headers):
        bug = _create(client, auth_headers)
        res = client.post(f"/api/v1/bugs/{bug['id']}/transition", json={"action": "close"},
                          headers=auth_headers)
        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "ERR_CONFLICT_STATE"
        assert "Valid next states" in body["error"]

    def test_missing_action_is_400(self, client, auth_headers):
        bug = _create(client, auth_headers)
        assert client.post(f"/api/v1/bugs/{bug['id']}/transition", json={},
                           headers=auth_headers).status_code == 400

    def test_unknown_action_is_422(self, client, auth_headers):
        bug = _create(client, auth_headers)
        assert client.post(f"/api/v1/bugs/{bug['id']}/transition", json={"action": "explode"},
                           headers=auth_headers).status_code == 422


class TestDelete:
    def test_delete_open_bug(self, client, auth_headers):
        bug = _create(client, auth_headers)
        assert client.delete(f"/api/v1/bugs/{bug['id']}", headers=auth_headers).status_code == 200
        assert client.get(f"/api/v1/bugs/{bug['id']}", headers=auth_headers).status_code == 404

    def test_cannot_delete_worked_bug(self, client, auth_headers):
        bug = _create(client, auth_headers, severity="LOW", priority="P3")
        assert client.delete(f"/api/v1/bugs/{bug['id']}", headers=auth_headers).status_code == 422
