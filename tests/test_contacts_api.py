from clinvia.api_key import UNAUTHORIZED_MESSAGE


def post(client, headers, body):
    return client.post("/api-contacts", json=body, headers=headers)


def test_requires_api_key(client, owner):
    response = client.post("/api-contacts", json={"action": "get_contact", "user_id": owner.id})
    assert response.status_code == 401
    assert response.json() == {"error": UNAUTHORIZED_MESSAGE}

    response = post(client, {"x-api-key": "wrong"}, {"action": "get_contact", "user_id": owner.id})
    assert response.status_code == 401


def test_requires_user_id(client, headers):
    response = post(client, headers, {"action": "get_contact", "phone_number": "5511"})
    assert response.status_code == 400
    assert response.json() == {"error": "Missing required field: user_id"}


def test_create_and_find_by_formatted_phone(client, headers, owner):
    response = post(
        client,
        headers,
        {
            "action": "create_contact",
            "user_id": owner.id,
            "contact_data": {
                "number": "5511999990000@s.whatsapp.net",
                "push_name": "Maria",
                "email": "  Maria@Example.COM ",
                "unknown_field": "ignored",
            },
        },
    )
    assert response.status_code == 200
    created = response.json()
    assert created["user_id"] == owner.id
    assert created["email"] == "maria@example.com"

    response = post(
        client, headers, {"action": "get_contact", "user_id": owner.id, "phone_number": "+55 (11) 99999-0000"}
    )
    assert response.status_code == 200
    assert response.json()["id"] == created["id"]


def test_get_contact_not_found_returns_null(client, headers, owner):
    response = post(client, headers, {"action": "get_contact", "user_id": owner.id, "phone_number": "5521000"})
    assert response.status_code == 200
    assert response.json() is None


def test_contacts_are_isolated_per_tenant(client, headers, factory, owner):
    other = factory.user()
    factory.contact(other, push_name="Someone else")

    response = post(
        client, headers, {"action": "get_contact", "user_id": owner.id, "phone_number": "5511999990000"}
    )
    assert response.json() is None


def test_create_requires_number(client, headers, owner):
    response = post(
        client, headers, {"action": "create_contact", "user_id": owner.id, "contact_data": {"push_name": "Ana"}}
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Missing number in contact_data"}


def test_update_by_phone_number(client, headers, factory, owner):
    contact = factory.contact(owner, push_name="Maria")

    response = post(
        client,
        headers,
        {
            "action": "update_contact",
            "user_id": owner.id,
            "phone_number": "5511999990000",
            "contact_data": {"company": "ACME", "patient": True},
        },
    )
    assert response.status_code == 200
    body = response.json()
    assert body["id"] == contact.id
    assert body["company"] == "ACME"
    assert body["patient"] is True
    assert body["push_name"] == "Maria"


def test_update_unknown_contact(client, headers, owner):
    response = post(
        client,
        headers,
        {"action": "update_contact", "user_id": owner.id, "contact_data": {"id": "missing", "company": "X"}},
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Contact not found"}


def test_update_without_identifier(client, headers, owner):
    response = post(client, headers, {"action": "update_contact", "user_id": owner.id, "contact_data": {}})
    assert response.status_code == 400
    assert "identify contact" in response.json()["error"]


def test_invalid_action(client, headers, owner):
    response = post(client, headers, {"action": "delete_contact", "user_id": owner.id})
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid action"}
