from datetime import timedelta

from clinvia.models_messaging import ConversationFollowUp, FollowUpCategory
from clinvia.shared.timezones import utcnow


def test_agent_resolves_conversation(client, db, auth, factory, owner):
    instance = factory.instance(owner)
    conversation = factory.conversation(instance, factory.contact(owner), status="open", unread_count=4)
    category = FollowUpCategory(user_id=owner.id, name="Retorno")
    db.add(category)
    db.flush()
    follow_up = ConversationFollowUp(
        conversation_id=conversation.id,
        category_id=category.id,
        auto_send=True,
        next_send_at=utcnow() + timedelta(hours=1),
    )
    db.add(follow_up)
    db.commit()

    response = client.post(f"/conversations/{conversation.id}/resolve", headers=auth)

    assert response.status_code == 200
    assert response.json() == {"success": True, "id": conversation.id, "status": "resolved", "unread_count": 0}
    db.refresh(conversation)
    db.refresh(follow_up)
    assert conversation.status == "resolved"
    assert follow_up.completed is True
    assert follow_up.next_send_at is None


def test_automation_resolves_conversation(client, db, headers, factory, owner):
    conversation = factory.conversation(factory.instance(owner))

    response = client.post(f"/conversations/{conversation.id}/resolve", headers=headers)

    assert response.status_code == 200
    db.refresh(conversation)
    assert conversation.status == "resolved"


def test_resolve_conversation_of_other_account(client, db, factory, bearer, owner):
    conversation = factory.conversation(factory.instance(owner))
    outsider = factory.member(factory.user(), "Bia", auth_user_id="auth-bia")

    response = client.post(f"/conversations/{conversation.id}/resolve", headers=bearer(outsider))

    assert response.status_code == 404
    db.refresh(conversation)
    assert conversation.status == "pending"


def test_resolve_unknown_conversation(client, headers):
    assert client.post("/conversations/missing/resolve", headers=headers).status_code == 404


def test_resolve_requires_caller(client, factory, owner):
    conversation = factory.conversation(factory.instance(owner))
    assert client.post(f"/conversations/{conversation.id}/resolve").status_code == 401
