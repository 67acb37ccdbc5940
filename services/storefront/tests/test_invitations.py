"""
Digital Invitation Tests
"""
from datetime import date

import pytest

from app import models


@pytest.fixture
def invitation(db_session):
    invitation = models.Invitation(
        child_name="Lucas",
        child_age=5,
        theme="Dinossauros",
        image_url="https://files.example.com/convite.png",
        event_date=date(2024, 6, 15),
        event_time="15:00",
        event_location="Buffet Alegria",
        background_color="#fde68a",
        share_token="a1b2c3d4e5f6",
    )
    db_session.add(invitation)
    db_session.commit()
    db_session.refresh(invitation)
    return invitation


class TestGetInvitation:

    def test_returns_invitation(self, client, invitation):
        response = client.post("/get-invitation", json={"share_token": "a1b2c3d4e5f6"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["id"] == invitation.id
        assert data["child_name"] == "Lucas"
        assert data["child_age"] == 5
        assert data["event_date"] == "2024-06-15"
        assert data["event_time"] == "15:00"
        assert data["gift_list_url"] is None
        assert "tenant_id" not in data

    @pytest.mark.parametrize("body", [{}, {"share_token": ""}, {"share_token": "short"}])
    def test_invalid_token(self, client, db_session, body):
        response = client.post("/get-invitation", json=body)

        assert response.status_code == 400
        assert response.json() == {"error": "Token inválido"}

    def test_unknown_token(self, client, invitation):
        response = client.post("/get-invitation", json={"share_token": "zzzzzzzzzzzz"})

        assert response.status_code == 404
        assert response.json() == {"error": "Convite não encontrado"}
