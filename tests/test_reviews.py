from conftest import auth, make_booking, make_user


def _review(client, uid, booking_id, rating=5, comment="Spotless"):
    return client.post(
        "/api/reviews",
        json={"bookingId": str(booking_id), "rating": rating, "comment": comment},
        headers=auth(uid),
    )


def test_review_completed_booking_updates_aggregates(client, db, marketplace):
    service = marketplace["service"]
    first = make_booking(db, service, status="completed")
    second = make_booking(db, service, status="completed")

    assert _review(client, "cust1", first["_id"], rating=5).status_code == 201
    response = _review(client, "cust1", second["_id"], rating=4)

    assert response.status_code == 201
    review = response.json()["data"]
    assert review["providerId"] == "prov1"
    assert review["serviceId"] == str(service["_id"])
    assert review["userName"] == "Casey Customer"

    stored_service = db["services"].find_one({"_id": service["_id"]})
    assert stored_service["rating"] == 4.5
    assert stored_service["reviewCount"] == 2
    provider = db["users"].find_one({"firebaseUid": "prov1"})
    assert provider["averageRating"] == 4.5
    assert provider["reviewCount"] == 2


def test_cannot_review_unfinished_booking(client, db, marketplace):
    booking = make_booking(db, marketplace["service"], status="confirmed")

    response = _review(client, "cust1", booking["_id"])

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "REVIEW_NOT_ALLOWED"


def test_one_review_per_booking(client, db, marketplace):
    booking = make_booking(db, marketplace["service"], status="completed")

    assert _review(client, "cust1", booking["_id"]).status_code == 201
    response = _review(client, "cust1", booking["_id"])

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "DUPLICATE"


def test_only_the_customer_reviews(client, db, marketplace):
    make_user(db, "cust2")
    booking = make_booking(db, marketplace["service"], status="completed")

    response = _review(client, "cust2", booking["_id"])

    assert response.status_code == 403


def test_rating_out_of_range(client, db, marketplace):
    booking = make_booking(db, marketplace["service"], status="completed")

    assert _review(client, "cust1", booking["_id"], rating=6).status_code == 400
    assert _review(client, "cust1", booking["_id"], comment="x" * 1001).status_code == 400


def test_update_and_delete_recompute_aggregates(client, db, marketplace):
    service = marketplace["service"]
    booking = make_booking(db, service, status="completed")
    review_id = _review(client, "cust1", booking["_id"], rating=5).json()["data"]["id"]

    updated = client.put(f"/api/reviews/{review_id}", json={"rating": 2}, headers=auth("cust1"))
    assert updated.status_code == 200
    assert db["services"].find_one({"_id": service["_id"]})["rating"] == 2

    deleted = client.delete(f"/api/reviews/{review_id}", headers=auth("cust1"))
    assert deleted.status_code == 200
    stored = db["services"].find_one({"_id": service["_id"]})
    assert stored["rating"] == 0
    assert stored["reviewCount"] == 0
    assert db["users"].find_one({"firebaseUid": "prov1"})["reviewCount"] == 0


def test_provider_responds(client, db, marketplace):
    booking = make_booking(db, marketplace["service"], status="completed")
    review_id = _review(client, "cust1", booking["_id"]).json()["data"]["id"]

    by_customer = client.put(
        f"/api/reviews/{review_id}/respond", json={"text": "Me too"}, headers=auth("cust1")
    )
    by_provider = client.put(
        f"/api/reviews/{review_id}/respond", json={"text": "Thanks!"}, headers=auth("prov1")
    )

    assert by_customer.status_code == 403
    assert by_provider.status_code == 200
    assert by_provider.json()["data"]["response"]["text"] == "Thanks!"


def test_list_filters(client, db, marketplace):
    booking = make_booking(db, marketplace["service"], status="completed")
    _review(client, "cust1", booking["_id"])

    by_provider = client.get("/api/reviews?providerId=prov1").json()
    by_other = client.get("/api/reviews?providerId=prov9").json()
    mine = client.get("/api/reviews/user", headers=auth("cust1")).json()

    assert by_provider["count"] == 1
    assert by_other["count"] == 0
    assert mine["data"][0]["bookingId"] == str(booking["_id"])
