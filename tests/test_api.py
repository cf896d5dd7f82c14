"""Tests for the Interview Dispatch HTTP API."""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from interview_dispatch.errors import DeliveryError, GenerationError
from interview_dispatch.main import AppServices, create_app, verify_sweep_secret
from interview_dispatch.models import GenerationReply, OutcomeStatus

INVITATION = {
    "candidateName": "Marie Dupont",
    "candidateEmail": "marie.dupont@example.com",
    "postTitle": "Comptable",
    "interviewDate": "15/03/2025",
    "interviewTime": "14:30",
}


@pytest.fixture
def services(settings, db_manager, mock_generator, mock_delivery):
    return AppServices(settings, db_manager, mock_generator, mock_delivery)


@pytest.fixture
def client(services):
    """Create test client."""
    return TestClient(create_app(services))


def token_from_last_email(mock_delivery):
    html = mock_delivery.send_email.call_args.args[2]
    return html.split("token=")[1].split('"')[0]


class TestHealthCheck:
    """Tests for health and root endpoints."""

    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database_connected"] is True

    def test_root(self, client):
        assert client.get("/").json()["status"] == "running"


class TestChat:
    """Tests for the chat endpoint."""

    def test_plain_turn(self, client):
        response = client.post("/chat", json={"message": "Bonjour", "conversationHistory": []})
        assert response.status_code == 200
        data = response.json()
        assert data["response"] == "Bonjour !"
        assert data["shouldSendEmail"] is False
        assert data["emailSent"] is False
        assert data["recentOutcomes"] == []

    def test_context_from_recent_outcomes(self, client, mock_generator, create_outcome):
        create_outcome()

        response = client.post("/chat", json={"message": "Qui est en attente ?"})

        system = mock_generator.generate.call_args.kwargs["system"]
        assert "Candidats récents: Marie Dupont (sent)" in system
        assert response.json()["recentOutcomes"][0]["candidateEmail"] == "marie.dupont@example.com"

    def test_malformed_history_entries_ignored(self, client, mock_generator):
        response = client.post("/chat", json={
            "message": "Bonjour",
            "conversationHistory": ["oops", {"role": "bot", "content": "Salut"}, {"role": "user"}],
        })
        assert response.status_code == 200
        messages = mock_generator.generate.call_args.kwargs["messages"]
        assert [(m.role, m.content) for m in messages] == [("user", "Salut"), ("user", "Bonjour")]

    def test_empty_message_rejected(self, client):
        response = client.post("/chat", json={"message": ""})
        assert response.status_code == 400
        assert response.json()["detail"]["fields"] == ["message"]

    def test_generation_failure(self, client, mock_generator):
        mock_generator.generate = AsyncMock(side_effect=GenerationError("Connection error: timeout"))

        response = client.post("/chat", json={"message": "Bonjour"})

        assert response.status_code == 502
        assert "timeout" in response.json()["detail"]["details"]

    def test_send_email_flow(self, client, mock_generator, mock_delivery, db_manager):
        mock_generator.generate = AsyncMock(side_effect=[
            GenerationReply(text="C'est parti ! SEND_EMAIL"),
            GenerationReply(text='{"subject": "Entretien Comptable", "body": "Bonjour Marie"}'),
        ])
        history = [
            {"role": "user", "content": "Le candidat s'appelle Marie Dupont, il postule pour devenir comptable."},
            {"role": "assistant", "content": "Quel est son email ?"},
        ]

        response = client.post("/chat", json={
            "message": "marie.dupont@example.com, le 15/03/2025 à 14h30 en présentiel",
            "conversationHistory": history,
        })

        assert response.status_code == 200
        data = response.json()
        assert data["shouldSendEmail"] is True
        assert data["emailSent"] is True
        assert data["emailResult"]["emailId"] == "email-123"
        assert "SEND_EMAIL" not in data["response"]

        outcome = db_manager.get_latest_outcome("marie.dupont@example.com")
        assert outcome.interview_location == "En présentiel"
        assert outcome.email_subject == "Entretien Comptable"

    def test_send_email_missing_fields(self, client, mock_generator, mock_delivery):
        mock_generator.generate = AsyncMock(return_value=GenerationReply(text="SEND_EMAIL"))

        response = client.post("/chat", json={"message": "Envoie à marie.dupont@example.com"})

        data = response.json()
        assert data["shouldSendEmail"] is True
        assert data["emailSent"] is False
        assert data["missingFields"] == ["name", "post", "date", "time"]
        mock_delivery.send_email.assert_not_called()


class TestDispatchInvitation:
    """Tests for the invitation endpoint."""

    def test_success(self, client, mock_delivery):
        response = client.post("/dispatch-invitation", json=INVITATION)
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["emailId"] == "email-123"
        assert data["outcomeId"]
        mock_delivery.send_email.assert_awaited_once()

    def test_invalid_date_rejected(self, client, mock_delivery):
        response = client.post("/dispatch-invitation", json={**INVITATION, "interviewDate": "2025-03-15"})
        assert response.status_code == 422
        mock_delivery.send_email.assert_not_called()

    def test_invalid_email_rejected(self, client):
        response = client.post("/dispatch-invitation", json={**INVITATION, "candidateEmail": "not-an-email"})
        assert response.status_code == 422

    def test_delivery_failure(self, client, mock_delivery):
        mock_delivery.send_email = AsyncMock(side_effect=DeliveryError("HTTP error 403: domain not verified"))

        response = client.post("/dispatch-invitation", json=INVITATION)

        assert response.status_code == 502
        assert "domain not verified" in response.json()["detail"]["details"]


class TestDispatchReminder:
    """Tests for the reminder endpoint."""

    def test_unknown_candidate(self, client):
        response = client.post("/dispatch-reminder", json={"email": "nobody@example.com"})
        assert response.status_code == 404

    def test_already_confirmed(self, client, create_outcome):
        create_outcome(status=OutcomeStatus.CONFIRMED.value)
        response = client.post("/dispatch-reminder", json={"email": "marie.dupont@example.com"})
        assert response.status_code == 400

    def test_limit_reached(self, client, create_outcome):
        create_outcome(reminder_count=3)
        response = client.post("/dispatch-reminder", json={"email": "marie.dupont@example.com"})
        assert response.status_code == 400

    def test_success(self, client, create_outcome):
        create_outcome(reminder_count=2)
        response = client.post("/dispatch-reminder", json={"email": "marie.dupont@example.com"})
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "reminderCount": 3,
            "emailId": "email-123",
            "persistenceWarning": None,
        }


class TestUpdateStatus:
    """Tests for the status update endpoint."""

    def test_confirm_then_decline(self, client, create_outcome):
        create_outcome()

        confirmed = client.post("/update-status", json={"email": "marie.dupont@example.com", "status": "confirmed"})
        assert confirmed.status_code == 200
        assert confirmed.json()["confirmedAt"] is not None

        declined = client.post("/update-status", json={"email": "marie.dupont@example.com", "status": "declined"})
        assert declined.json()["status"] == "declined"
        assert declined.json()["confirmedAt"] is None

    def test_unknown_candidate(self, client):
        response = client.post("/update-status", json={"email": "nobody@example.com", "status": "confirmed"})
        assert response.status_code == 404

    def test_invalid_status(self, client):
        response = client.post("/update-status", json={"email": "a@example.com", "status": "maybe"})
        assert response.status_code == 422


class TestConfirmLink:
    """Tests for the one-shot confirmation link."""

    def test_confirm_twice(self, client, mock_delivery, db_manager):
        client.post("/dispatch-invitation", json=INVITATION)
        token = token_from_last_email(mock_delivery)
        params = {"email": "marie.dupont@example.com", "token": token}

        first = client.get("/confirm", params=params)
        assert first.status_code == 200
        assert "Confirmation réussie" in first.text
        outcome = db_manager.get_latest_outcome("marie.dupont@example.com")
        assert outcome.status == OutcomeStatus.CONFIRMED

        second = client.get("/confirm", params=params)
        assert second.status_code == 200
        assert "Confirmation déjà effectuée" in second.text
        assert db_manager.get_latest_outcome("marie.dupont@example.com").confirmed_at == outcome.confirmed_at

    def test_missing_parameters(self, client):
        response = client.get("/confirm", params={"email": "marie.dupont@example.com"})
        assert response.status_code == 400
        assert "Lien de confirmation invalide" in response.text

    def test_unknown_token(self, client):
        response = client.get("/confirm", params={"email": "marie.dupont@example.com", "token": "nope"})
        assert response.status_code == 404
        assert "text/html" in response.headers["content-type"]


class TestReminderSweep:
    """Tests for the scheduled reminder sweep endpoint."""

    def test_unprotected_sweep(self, client, create_outcome):
        create_outcome(hours_ago=30)
        response = client.post("/reminder-sweep")
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["remindersSent"] == 1
        assert data["failures"] == 0

    def test_secret_required(self, settings, db_manager, mock_generator, mock_delivery):
        settings.reminder_sweep_secret = "s3cret"
        client = TestClient(create_app(AppServices(settings, db_manager, mock_generator, mock_delivery)))

        assert client.post("/reminder-sweep").status_code == 401
        assert client.post("/reminder-sweep", headers={"Authorization": "Bearer wrong"}).status_code == 401
        assert client.post("/reminder-sweep", headers={"Authorization": "Bearer s3cret"}).status_code == 200
        assert client.post("/reminder-sweep", headers={"X-API-Key": "s3cret"}).status_code == 200

    def test_verify_sweep_secret(self):
        assert verify_sweep_secret("abc", "Bearer abc", None) is True
        assert verify_sweep_secret("abc", "abc", None) is False
        assert verify_sweep_secret("abc", None, "abc") is True
        assert verify_sweep_secret("abc", None, None) is False


class TestOutcomes:
    """Tests for the dashboard read endpoints."""

    def test_list_and_filter(self, client, create_outcome):
        create_outcome(email="a@example.com")
        create_outcome(email="b@example.com", status=OutcomeStatus.CONFIRMED.value)

        all_outcomes = client.get("/outcomes").json()
        assert all_outcomes["total"] == 2

        confirmed = client.get("/outcomes", params={"status": "confirmed"}).json()
        assert [o["candidateEmail"] for o in confirmed["outcomes"]] == ["b@example.com"]

    def test_stats(self, client, create_outcome):
        create_outcome(email="a@example.com", reminder_count=1)
        data = client.get("/outcomes/stats").json()
        assert data["total"] == 1
        assert data["sent"] == 1
        assert data["remindersSent"] == 1

    def test_stale(self, client, create_outcome):
        create_outcome(email="old@example.com", hours_ago=72)
        create_outcome(email="new@example.com", hours_ago=2)
        data = client.get("/outcomes/stale").json()
        assert [o["candidateEmail"] for o in data["outcomes"]] == ["old@example.com"]

    def test_latest_for_candidate(self, client, create_outcome):
        create_outcome()
        response = client.get("/outcomes/marie.dupont@example.com")
        assert response.status_code == 200
        assert response.json()["candidateName"] == "Marie Dupont"

    def test_unknown_candidate(self, client):
        assert client.get("/outcomes/nobody@example.com").status_code == 404
