"""Tests for contexts router."""

from uuid import uuid4

from faxlink.constants.context import ContextStatus


def test_create_context(client, setup_user_id):
    """POST /contexts allocates a reference code."""
    payload = {
        "user_id": str(setup_user_id),
        "context_type": "shopping",
        "context_data": {
            "query": "printer paper",
            "options": [{"marker": "A", "product_id": "p-1", "title": "A4 500"}],
        },
        "summary": "Printer paper order",
        "template_fingerprint": {
            "family": "lettered_options",
            "option_markers": ["A"],
            "max_selections": 1,
        },
    }
    r = client.post("/contexts", json=payload)
    assert r.status_code == 201
    data = r.json()
    assert data["reference_id"].startswith("FX-")
    assert data["status"] == ContextStatus.ACTIVE
    assert data["template_fingerprint"]["option_markers"] == ["A"]


def test_create_context_rejects_mismatched_payload(client, setup_user_id):
    """context_data must fit its context_type."""
    payload = {
        "user_id": str(setup_user_id),
        "context_type": "email",
        "context_data": {"query": "not an email"},
    }
    r = client.post("/contexts", json=payload)
    assert r.status_code == 400


def test_create_context_unknown_type(client, setup_user_id):
    r = client.post(
        "/contexts",
        json={"user_id": str(setup_user_id), "context_type": "sms", "context_data": {}},
    )
    assert r.status_code == 422


def test_get_context_owner_scoped(client, setup_email_context):
    r = client.get(
        f"/contexts/{setup_email_context.id}",
        params={"user_id": str(setup_email_context.user_id)},
    )
    assert r.status_code == 200
    assert r.json()["reference_id"] == setup_email_context.reference_id

    r = client.get(f"/contexts/{setup_email_context.id}", params={"user_id": str(uuid4())})
    assert r.status_code == 404


def test_list_active_contexts(client, setup_user_id, setup_email_context, setup_shopping_context, setup_expired_context):
    r = client.get(f"/users/{setup_user_id}/contexts")
    assert r.status_code == 200
    ids = [c["id"] for c in r.json()["items"]]
    assert ids == [str(setup_email_context.id), str(setup_shopping_context.id)]

    r = client.get(f"/users/{setup_user_id}/contexts", params={"window_days": 1})
    assert r.json()["total"] == 2


def test_sweep(client, setup_expired_context, setup_email_context):
    r = client.post("/contexts/sweep")
    assert r.status_code == 200
    assert r.json() == {"expired": 1}


def test_list_correlation_events(client, setup_user_id, setup_email_context):
    client.post(
        "/inbound/resolve",
        json={
            "user_id": str(setup_user_id),
            "extracted_text": f"Re {setup_email_context.reference_id}",
        },
    )
    r = client.get(f"/users/{setup_user_id}/correlation-events")
    assert r.status_code == 200
    events = r.json()
    assert [e["event_type"] for e in events] == ["context_resolved"]
    assert events[0]["method"] == "reference_id"
