"""
API tests against the real application.
Checks routing, status codes and the error envelope.
"""
from unittest.mock import patch


class TestHealth:
    """Tests for the health endpoints."""

    def test_health(self, client):
        """The reference snapshot is loaded at startup."""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["reference_loaded"] is True


class TestCharacterRoutes:
    """Tests for registration and the GM ledger."""

    def test_register_and_get(self, client, payloads):
        """201 on create, then readable by id."""
        response = client.post("/api/characters", json=payloads["cora"]())
        assert response.status_code == 201
        assert response.json()["current_hp"] == 24

        response = client.get("/api/characters/cora")
        assert response.status_code == 200
        body = response.json()
        assert body["spell_slot_summary"]["1"]["total"] == 4

    def test_unknown_character(self, client):
        """404 with the error envelope."""
        response = client.get("/api/characters/nobody")
        assert response.status_code == 404
        error = response.json()["error"]
        assert error["code"] == "CHARACTER_NOT_FOUND"
        assert error["recoverable"] is True
        assert error["error_id"]

    def test_request_validation(self, client, payloads):
        """Schema violations come back as a 422 envelope."""
        response = client.post("/api/characters", json=payloads["aria"](max_hp=0))
        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"]["errors"][0]["field"] == "body -> max_hp"

    def test_damage(self, client, payloads):
        """GM damage runs the pipeline."""
        client.post("/api/characters", json=payloads["aria"]())
        response = client.post("/api/characters/aria/damage", json={"amount": 5, "damage_type": "slashing"})
        assert response.status_code == 200
        assert response.json()["creature"]["current_hp"] == 7

    def test_bad_condition(self, client, payloads):
        """Unknown condition names are a 400."""
        client.post("/api/characters", json=payloads["aria"]())
        response = client.post("/api/characters/aria/conditions", json={"condition": "sparkly"})
        assert response.status_code == 400
        assert response.json()["error"]["details"]["field"] == "condition"


class TestCombatRoutes:
    """Tests for a short fight over HTTP."""

    def test_combat_flow(self, client, payloads):
        """Start, act, get told off for acting out of turn, end."""
        client.post("/api/characters", json=payloads["aria"]())
        client.post("/api/characters", json=payloads["cora"]())

        with patch("arbiter.core.initiative.roll_die", side_effect=[18, 1, 1]):
            response = client.post("/api/combat/lobby-1/start", json={"monsters": [{"slug": "goblin"}]})
        assert response.status_code == 200
        assert response.json()["status"]["current_turn"]["combatant_id"] == "aria"

        response = client.post("/api/actions", json={"character_id": "aria", "verb": "dodge"})
        assert response.status_code == 200
        assert response.json()["actor"]["conditions"] == ["dodging"]

        response = client.post("/api/actions", json={"character_id": "cora", "verb": "dodge"})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "COMBAT_NOT_YOUR_TURN"

        response = client.get("/api/actions/my-turn/aria")
        assert response.json()["is_my_turn"] is True

        response = client.post("/api/combat/lobby-1/advance", json={"expected_round": 1, "expected_turn_index": 0})
        assert response.status_code == 200

        response = client.post("/api/combat/lobby-1/advance", json={"expected_round": 1, "expected_turn_index": 0})
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONCURRENT_MODIFICATION"

        response = client.post("/api/combat/lobby-1/end")
        assert response.status_code == 200
        assert response.json()["status"]["is_active"] is False

    def test_unknown_verb(self, client, payloads):
        """Unknown verbs list what is allowed."""
        client.post("/api/characters", json=payloads["aria"]())
        response = client.post("/api/actions", json={"character_id": "aria", "verb": "teleport"})
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "UNKNOWN_VERB"
        assert "end_turn" in error["details"]["allowed"]

    def test_status_without_combat(self, client):
        """A lobby with no fight reports an inactive session."""
        response = client.get("/api/combat/empty-lobby/status")
        assert response.status_code == 200
        assert response.json()["is_active"] is False

    def test_end_without_combat(self, client):
        """Nothing to end is a 422."""
        response = client.post("/api/combat/empty-lobby/end")
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "COMBAT_NOT_ACTIVE"


class TestRulesRoutes:
    """Tests for the dice and rules reference endpoints."""

    def test_roll(self, client):
        """A dice expression is rolled and echoed back normalized."""
        with patch("arbiter.core.dice.roll_die", return_value=4):
            response = client.get("/api/roll", params={"dice": "2d6+3"})
        assert response.status_code == 200
        assert response.json()["total"] == 11

    def test_condition_catalogue(self, client):
        """Every condition is listed."""
        response = client.get("/api/rules/conditions")
        ids = {entry["id"] for entry in response.json()}
        assert {"grappled", "paralyzed", "exhaustion"} <= ids
