"""The ``/ws`` endpoint end to end, through Starlette's test client."""

from tests.conftest import CANDIDATE_ID, OTHER_CANDIDATE_ID, auth_headers


def _register(ws, user_id, role="candidate", name="Cara Candidate"):
    ws.send_json({"event": "user:register", "data": {"userId": user_id, "userRole": role, "userName": name}})
    return ws.receive_json()


def _open_ticket(client):
    response = client.post(
        "/api/support/tickets",
        json={"subject": "Camera not detected", "description": "Proctoring fails"},
        headers=auth_headers(CANDIDATE_ID),
    )
    return response.json()["data"]


def test_register_over_the_socket(client):
    with client.websocket_connect("/ws") as ws:
        ack = _register(ws, CANDIDATE_ID)

    assert ack["event"] == "user:registered"
    assert ack["data"]["success"] is True
    assert ack["data"]["userId"] == CANDIDATE_ID


def test_malformed_and_unknown_frames_get_an_error(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_text("{not json")
        assert ws.receive_json() == {"event": "error", "data": {"message": "Malformed frame"}}

        ws.send_json({"data": {}})
        assert ws.receive_json() == {"event": "error", "data": {"message": "Malformed frame"}}

        ws.send_json({"event": "ticket:teleport", "data": {}})
        assert ws.receive_json() == {"event": "error", "data": {"message": "Unknown event: ticket:teleport"}}


def test_chat_round_trip(client):
    ticket = _open_ticket(client)

    with client.websocket_connect("/ws") as ws:
        _register(ws, CANDIDATE_ID)
        ws.send_json({"event": "ticket:join", "data": {"ticketId": ticket["id"]}})
        joined = ws.receive_json()
        assert joined == {
            "event": "ticket:joined",
            "data": {"success": True, "ticketId": ticket["id"], "activeUsers": [CANDIDATE_ID]},
        }

        ws.send_json({"event": "message:send", "data": {"ticketId": ticket["id"], "message": "hello"}})
        sent = ws.receive_json()
        received = ws.receive_json()

    assert sent["event"] == "message:sent"
    assert received["event"] == "message:received"
    assert received["data"]["message"]["message"] == "hello"
    assert received["data"]["message"]["sender_id"] == CANDIDATE_ID
    assert received["data"]["ticket_status"] == "open"


def test_a_stranger_cannot_join(client):
    ticket = _open_ticket(client)

    with client.websocket_connect("/ws") as ws:
        _register(ws, OTHER_CANDIDATE_ID, name="Cole Candidate")
        ws.send_json({"event": "ticket:join", "data": {"ticketId": ticket["id"]}})
        assert ws.receive_json() == {"event": "error", "data": {"message": "Access denied to this ticket"}}
