"""
Integration tests for the offer event API over WebSocket.

WHAT: offer:create / offer:respond / offer:withdraw frames, error frames,
      and counterpart notifications
WHY: The event channel must behave exactly like the REST endpoints
HOW: Two TestClient WebSocket sessions (buyer and seller) sharing one app
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from starlette.websockets import WebSocketDisconnect

from wholexale.core.offer_manager import offer_manager
from wholexale.main import app

BUYER = "buyer-1"
SELLER = "seller-1"
STRANGER = "stranger-1"


@pytest.fixture
def client(db):
    with TestClient(app) as test_client:
        yield test_client


def _connect(client, user_id):
    return client.websocket_connect(f"/api/v1/ws/offers?user_id={user_id}")


def _ready(ws):
    """Round-trip a ping so the connection is registered with the hub."""
    ws.send_json({"event": "ping", "data": {"n": 1}})
    assert ws.receive_json() == {"event": "pong", "data": {"n": 1}}


def _create(buyer_ws, payload):
    buyer_ws.send_json({"event": "offer:create", "data": payload})
    frame = buyer_ws.receive_json()
    assert frame["event"] == "offer:created", frame
    return frame["data"]["offer"]


@pytest.mark.integration
class TestConnection:

    def test_identity_required(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/api/v1/ws/offers"):
                pass
        assert exc_info.value.code == 4401

    def test_invalid_json_keeps_connection_open(self, client):
        with _connect(client, BUYER) as ws:
            ws.send_text("not json")
            frame = ws.receive_json()
            assert frame["event"] == "error"
            assert frame["data"]["code"] == "VALIDATION_ERROR"
            _ready(ws)

    def test_unknown_event(self, client):
        with _connect(client, BUYER) as ws:
            ws.send_json({"event": "offer:haggle", "data": {}})
            frame = ws.receive_json()
            assert frame["data"]["code"] == "VALIDATION_ERROR"
            assert frame["data"]["event"] == "offer:haggle"

    def test_invalid_payload(self, client):
        with _connect(client, BUYER) as ws:
            ws.send_json({"event": "offer:respond", "data": {"action": "accept"}})
            frame = ws.receive_json()
            assert frame["event"] == "error"
            assert frame["data"]["code"] == "VALIDATION_ERROR"
            fields = [error["field"] for error in frame["data"]["details"]["field_errors"]]
            assert "offerId" in fields

    def test_database_error_keeps_connection_open(self, client, monkeypatch):
        def locked(*args, **kwargs):
            raise OperationalError("UPDATE offers", {}, Exception("database is locked"))

        monkeypatch.setattr(offer_manager, "respond", locked)
        with _connect(client, SELLER) as ws:
            ws.send_json({"event": "offer:respond", "data": {"offerId": "OFF-1-ABC", "action": "accept"}})
            frame = ws.receive_json()

            assert frame["event"] == "error"
            assert frame["data"]["code"] == "INTERNAL_ERROR"
            assert frame["data"]["event"] == "offer:respond"
            assert "database is locked" not in frame["data"]["message"]
            _ready(ws)


@pytest.mark.integration
class TestOfferEvents:

    def test_create_notifies_seller(self, client, offer_payload):
        with _connect(client, SELLER) as seller_ws, _connect(client, BUYER) as buyer_ws:
            _ready(seller_ws)
            offer = _create(buyer_ws, offer_payload(conversationId="conv-1"))

            frame = seller_ws.receive_json()
            assert frame["event"] == "offer:received"
            assert frame["data"]["offer"]["offerId"] == offer["offerId"]
            assert frame["data"]["conversationId"] == "conv-1"
            assert offer["status"] == "pending"

    def test_negotiation_over_events(self, client, offer_payload):
        with _connect(client, SELLER) as seller_ws, _connect(client, BUYER) as buyer_ws:
            _ready(seller_ws)
            offer_id = _create(buyer_ws, offer_payload())["offerId"]
            seller_ws.receive_json()  # offer:received

            seller_ws.send_json({"event": "offer:respond", "data": {
                "offerId": offer_id, "action": "counter", "changes": {"price": 4500},
            }})
            reply = seller_ws.receive_json()
            assert reply["event"] == "offer:responded"
            assert reply["data"]["action"] == "counter"
            assert reply["data"]["offer"]["vendorCounterCount"] == 1

            notice = buyer_ws.receive_json()
            assert notice["event"] == "offer:response"
            assert notice["data"]["responder"] == {"id": SELLER, "role": "seller"}
            assert notice["data"]["offer"]["pricing"]["offerPrice"] == 4500

            # Either party may respond over the event API
            buyer_ws.send_json({"event": "offer:respond", "data": {"offerId": offer_id, "action": "accept"}})
            reply = buyer_ws.receive_json()
            assert reply["data"]["offer"]["status"] == "accepted"
            assert [e["action"] for e in reply["data"]["offer"]["negotiations"]] == ["sent", "countered", "accepted"]

            notice = seller_ws.receive_json()
            assert notice["event"] == "offer:response"
            assert notice["data"]["responder"]["role"] == "buyer"

    def test_withdraw(self, client, offer_payload):
        with _connect(client, SELLER) as seller_ws, _connect(client, BUYER) as buyer_ws:
            _ready(seller_ws)
            offer_id = _create(buyer_ws, offer_payload())["offerId"]
            seller_ws.receive_json()

            buyer_ws.send_json({"event": "offer:withdraw", "data": {"offerId": offer_id, "reason": "Budget cut"}})
            reply = buyer_ws.receive_json()
            assert reply["event"] == "offer:withdrawn"
            assert reply["data"]["offer"]["status"] == "withdrawn"

            notice = seller_ws.receive_json()
            assert notice["event"] == "offer:withdrawn"

    def test_error_frame_does_not_close(self, client):
        with _connect(client, SELLER) as ws:
            ws.send_json({"event": "offer:respond", "data": {"offerId": "OFF-0-MISSING00", "action": "accept"}})
            frame = ws.receive_json()
            assert frame == {
                "event": "error",
                "data": {
                    "code": "OFFER_NOT_FOUND",
                    "message": "Offer not found: OFF-0-MISSING00",
                    "details": {"offer_id": "OFF-0-MISSING00"},
                    "event": "offer:respond",
                },
            }
            _ready(ws)

    def test_rest_transitions_reach_websocket(self, client, offer_payload):
        with _connect(client, SELLER) as seller_ws:
            _ready(seller_ws)
            response = client.post("/api/v1/offers", json=offer_payload(), headers={"X-User-Id": BUYER})
            assert response.status_code == 201

            frame = seller_ws.receive_json()
            assert frame["event"] == "offer:received"
            assert frame["data"]["offer"]["offerId"] == response.json()["offer"]["offerId"]


@pytest.mark.integration
class TestParity:
    """The same refused call yields the same code on both entry points."""

    SCENARIOS = {
        "buyer_opening_counter": (BUYER, "respond", {"action": "counter", "changes": {"price": 3000}}),
        "invalid_action": (SELLER, "respond", {"action": "haggle"}),
        "stranger_accept": (STRANGER, "respond", {"action": "accept"}),
        "seller_withdraw": (SELLER, "withdraw", {"reason": "nope"}),
    }

    @pytest.mark.parametrize("scenario", sorted(SCENARIOS))
    def test_same_error_code(self, client, offer_payload, scenario):
        actor, operation, body = self.SCENARIOS[scenario]
        created = client.post("/api/v1/offers", json=offer_payload(), headers={"X-User-Id": BUYER})
        offer_id = created.json()["offer"]["offerId"]

        rest = client.put(f"/api/v1/offers/{offer_id}/{operation}", json=body, headers={"X-User-Id": actor})
        assert rest.status_code >= 400

        with _connect(client, actor) as ws:
            ws.send_json({"event": f"offer:{operation}", "data": {"offerId": offer_id, **body}})
            frame = ws.receive_json()

        assert frame["event"] == "error"
        assert frame["data"]["code"] == rest.json()["error"]
