from fastapi import status

from activity_recorder.recording.permissions import LOCATION

T0 = 1_700_000_000_000


def readings(n, start=T0):
    out = []
    for i in range(n):
        ts = start + i * 1000
        out.append({"metric": "power", "value": 200.0, "timestamp": ts})
        out.append({"metric": "heartrate", "value": 150, "timestamp": ts})
        out.append({"metric": "latlng", "value": [30.0 + i * 1e-4, 120.0], "timestamp": ts})
    return out


def start(client, activity_type="outdoor_bike"):
    return client.post("/recordings/start", json={"owner_id": "athlete-1", "activity_type": activity_type})


def test_full_recording_and_submission_flow(client, uploader):
    response = start(client)
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["state"] == "recording"

    response = client.post("/recordings/readings", json={"readings": readings(30)})
    assert response.json() == {"accepted": 90, "rejected": 0}

    assert client.post("/recordings/pause").json()["state"] == "paused"
    assert client.post("/recordings/resume").json()["state"] == "recording"

    response = client.post("/recordings/finish")
    assert response.status_code == status.HTTP_200_OK
    session_id = response.json()["session_id"]
    assert response.json()["finished_at"] is not None

    response = client.post(f"/submissions/{session_id}/prepare")
    data = response.json()
    assert data["state"] == "ready"
    assert sorted(data["streams"]) == ["heartrate", "latlng", "power"]
    assert data["activity"]["avg_power"] == 200.0

    response = client.patch(f"/submissions/{session_id}", json={"name": "Evening ride"})
    assert response.json()["activity"]["name"] == "Evening ride"

    response = client.post(f"/submissions/{session_id}/submit")
    assert response.json()["state"] == "success"
    assert response.json()["remote_id"] == "remote-1"
    assert uploader.calls[0][0].name == "Evening ride"

    response = client.post(f"/submissions/{session_id}/submit")
    assert response.status_code == status.HTTP_409_CONFLICT
    assert len(uploader.calls) == 1


def test_mismatched_value_type_is_reported_as_rejected(client):
    start(client)
    response = client.post("/recordings/readings", json={"readings": [
        {"metric": "moving", "value": 3.2, "timestamp": T0},
    ]})
    assert response.json() == {"accepted": 0, "rejected": 1}


def test_no_current_recording_is_404(client):
    assert client.post("/recordings/finish").status_code == status.HTTP_404_NOT_FOUND
    assert client.get("/recordings/current").status_code == status.HTTP_404_NOT_FOUND


def test_invalid_transition_is_409(client):
    start(client)
    assert client.post("/recordings/resume").status_code == status.HTTP_409_CONFLICT
    assert start(client).status_code == status.HTTP_409_CONFLICT


def test_missing_permission_is_403(client, permissions):
    permissions.revoke(LOCATION)
    assert start(client).status_code == status.HTTP_403_FORBIDDEN
    assert start(client, "indoor_bike_trainer").status_code == status.HTTP_200_OK


def test_discard_removes_submission(client):
    start(client)
    client.post("/recordings/readings", json={"readings": readings(3)})
    session_id = client.post("/recordings/finish").json()["session_id"]
    assert client.post("/recordings/discard").json()["state"] == "discarded"
    assert client.get(f"/submissions/{session_id}").status_code == status.HTTP_404_NOT_FOUND


def test_unknown_submission_is_404(client):
    assert client.post("/submissions/does-not-exist/prepare").status_code == status.HTTP_404_NOT_FOUND


def test_profile_roundtrip(client):
    body = {"id": "athlete-2", "weight_kg": 60, "ftp": 210, "threshold_hr": 165}
    assert client.put("/athletes/athlete-2/profile", json=body).status_code == status.HTTP_200_OK
    assert client.get("/athletes/athlete-2/profile").json()["ftp"] == 210
    assert client.get("/athletes/nobody/profile").status_code == status.HTTP_404_NOT_FOUND


def test_start_links_plan_id_to_session(client, store):
    response = client.post(
        "/recordings/start",
        json={"owner_id": "athlete-1", "activity_type": "outdoor_bike", "plan_id": "plan-7"},
    )
    assert response.status_code == status.HTTP_200_OK
    session = store.get_session(response.json()["session_id"])
    assert session.plan_id == "plan-7"
