"""HTTP and WebSocket tests for the relay API."""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from tests.conftest import b64, generate_bundle, generate_device_key


def _register(client: TestClient, user_id: str, key: bytes | None = None) -> dict:
    response = client.post(
        "/api/v1/devices/register",
        json={"userId": user_id, "publicKey": b64(key or generate_device_key())},
    )
    assert response.status_code == 201, response.text
    return response.json()


def _publish(client: TestClient, device_id: str, one_time_keys: int = 0) -> dict:
    material = generate_bundle(one_time_keys=one_time_keys)
    response = client.post(
        "/api/v1/keys/publish",
        json={
            "deviceId": device_id,
            "identityKey": b64(material["identity_key"]),
            "signedPreKey": b64(material["signed_pre_key"]),
            "signature": b64(material["signature"]),
            "oneTimePreKeys": [b64(key) for key in material["one_time_pre_keys"]],
        },
    )
    assert response.status_code == 201, response.text
    return material


def _send(client: TestClient, sender_id: str, recipient_id: str, body: bytes = b"ct1"):
    return client.post(
        "/api/v1/messages/send",
        json={"senderId": sender_id, "recipientId": recipient_id, "ciphertext": b64(body), "nonce": b64(b"n1")},
    )


def test_health_check(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert "timestamp" in response.json()


def test_root_lists_metadata(client: TestClient) -> None:
    assert client.get("/").json()["docs"] == "/docs"


def test_alice_to_bob_end_to_end(client: TestClient) -> None:
    alice = _register(client, "alice")
    bob = _register(client, "bob")
    material = _publish(client, bob["deviceId"], one_time_keys=1)

    first_fetch = client.get(f"/api/v1/keys/{bob['deviceId']}").json()
    assert first_fetch["userId"] == "bob"
    assert first_fetch["identityKey"] == b64(material["identity_key"])
    assert first_fetch["oneTimePreKey"] == b64(material["one_time_pre_keys"][0])
    assert client.get(f"/api/v1/keys/{bob['deviceId']}").json()["oneTimePreKey"] is None

    sent = _send(client, alice["deviceId"], bob["deviceId"])
    assert sent.status_code == 201
    envelope_id = sent.json()["envelopeId"]

    inbox = client.get(f"/api/v1/messages/inbox/{bob['deviceId']}").json()
    assert inbox["count"] == 1
    envelope = inbox["envelopes"][0]
    assert envelope["id"] == envelope_id
    assert envelope["senderId"] == alice["deviceId"]
    assert envelope["senderUserId"] == "alice"
    assert envelope["senderPublicKey"] == alice["publicKey"]
    assert envelope["ciphertext"] == b64(b"ct1")
    assert envelope["ephemeralKey"] is None

    ack = client.post("/api/v1/messages/ack", json={"envelopeIds": [envelope_id]})
    assert ack.json() == {"acknowledged": 1}
    again = client.post("/api/v1/messages/ack", json={"envelopeIds": [envelope_id]})
    assert again.json() == {"acknowledged": 0}
    assert client.get(f"/api/v1/messages/inbox/{bob['deviceId']}").json()["count"] == 0


def test_reregistration_returns_same_device(client: TestClient) -> None:
    key = generate_device_key()

    first = _register(client, "alice", key)
    second = _register(client, "alice", key)

    assert first["deviceId"] == second["deviceId"]


def test_device_listing_and_lookup(client: TestClient) -> None:
    laptop = _register(client, "alice")
    phone = _register(client, "alice")
    _publish(client, phone["deviceId"])

    listing = client.get("/api/v1/devices", params={"userId": "alice"}).json()

    assert listing["userId"] == "alice"
    assert [(d["deviceId"], d["hasKeyBundle"]) for d in listing["devices"]] == [
        (laptop["deviceId"], False),
        (phone["deviceId"], True),
    ]
    device = client.get(f"/api/v1/devices/{laptop['deviceId']}").json()
    assert device["userId"] == "alice"
    assert client.get("/api/v1/devices/missing").status_code == 404


def test_user_bundles_do_not_consume_pre_keys(client: TestClient) -> None:
    carol = _register(client, "carol")
    _register(client, "carol")
    _publish(client, carol["deviceId"], one_time_keys=2)

    bundles = client.get("/api/v1/keys/user/carol").json()

    assert [entry["deviceId"] for entry in bundles["bundles"]] == [carol["deviceId"]]
    assert client.get(f"/api/v1/keys/{carol['deviceId']}/count").json() == {
        "deviceId": carol["deviceId"],
        "remaining": 2,
    }


@pytest.mark.parametrize(
    ("path", "payload"),
    [
        ("/api/v1/devices/register", {"userId": "alice", "publicKey": "not base64!"}),
        ("/api/v1/devices/register", {"userId": "", "publicKey": b64(b"k" * 32)}),
        ("/api/v1/devices/register", {"userId": "alice", "publicKey": b64(b"k" * 4)}),
        ("/api/v1/messages/ack", {"envelopeIds": []}),
        ("/api/v1/messages/ack", {"envelopeIds": [f"id-{i}" for i in range(101)]}),
    ],
)
def test_malformed_requests_are_rejected(client: TestClient, path: str, payload: dict) -> None:
    assert client.post(path, json=payload).status_code == 422


def test_publish_rejects_oversized_pool(client: TestClient) -> None:
    device = _register(client, "alice")
    material = generate_bundle()

    response = client.post(
        "/api/v1/keys/publish",
        json={
            "deviceId": device["deviceId"],
            "identityKey": b64(material["identity_key"]),
            "signedPreKey": b64(material["signed_pre_key"]),
            "signature": b64(material["signature"]),
            "oneTimePreKeys": [b64(generate_device_key()) for _ in range(101)],
        },
    )

    assert response.status_code == 422


def test_missing_resources_are_404(client: TestClient) -> None:
    alice = _register(client, "alice")

    assert client.get(f"/api/v1/keys/{alice['deviceId']}").status_code == 404
    assert client.get(f"/api/v1/keys/{alice['deviceId']}/count").status_code == 404

    response = _send(client, alice["deviceId"], "ghost")
    assert response.status_code == 404
    assert response.json()["detail"] == "Recipient device not found"
    assert client.get(f"/api/v1/messages/inbox/{alice['deviceId']}").json()["count"] == 0


def test_inbox_limit_is_validated(client: TestClient) -> None:
    assert client.get("/api/v1/messages/inbox/any", params={"limit": 0}).status_code == 422
    assert client.get("/api/v1/messages/inbox/any", params={"limit": 101}).status_code == 422


def test_cleanup_endpoint_reports_deleted_count(client: TestClient) -> None:
    alice = _register(client, "alice")
    bob = _register(client, "bob")
    _send(client, alice["deviceId"], bob["deviceId"])

    assert client.delete("/api/v1/messages/cleanup").json() == {"deleted": 0}
    assert client.get(f"/api/v1/messages/inbox/{bob['deviceId']}").json()["count"] == 1


def test_system_status_is_sanitized(client: TestClient) -> None:
    body = client.get("/api/v1/system/status").json()

    assert body["presence"]["connections"] == 0
    assert body["retention"]["sweeper_running"] is False
    assert "database_url" not in str(body)


def test_websocket_receives_push_after_send(client: TestClient) -> None:
    alice = _register(client, "alice")
    bob = _register(client, "bob")

    with client.websocket_connect(f"/api/v1/ws/{bob['deviceId']}") as ws:
        connected = ws.receive_json()
        assert connected["type"] == "connected"
        assert connected["deviceId"] == bob["deviceId"]
        assert client.get(f"/api/v1/presence/{bob['deviceId']}").json() == {
            "deviceId": bob["deviceId"],
            "online": True,
        }

        envelope_id = _send(client, alice["deviceId"], bob["deviceId"], b"secret").json()["envelopeId"]
        hint = ws.receive_json()

        assert hint["type"] == "new_message"
        assert hint["envelopeId"] == envelope_id
        assert hint["senderId"] == alice["deviceId"]
        assert "ciphertext" not in hint

    # The envelope stays queued until the recipient acknowledges it.
    assert client.get(f"/api/v1/messages/inbox/{bob['deviceId']}").json()["count"] == 1


def test_websocket_ping_pong(client: TestClient) -> None:
    bob = _register(client, "bob")

    with client.websocket_connect(f"/api/v1/ws/{bob['deviceId']}") as ws:
        ws.receive_json()
        ws.send_json({"type": "ping"})

        assert ws.receive_json()["type"] == "pong"


def test_websocket_rejects_unknown_device(client: TestClient) -> None:
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/api/v1/ws/ghost"):
            pass

    assert exc_info.value.code == 1008
