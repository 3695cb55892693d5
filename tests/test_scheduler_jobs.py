from datetime import date, datetime, timedelta

import pytest

from clinvia import config
from clinvia.models import Appointment, Notification
from clinvia.models_financial import Expense, Revenue
from clinvia.models_messaging import ConversationFollowUp, FollowUpCategory, FollowUpTemplate, Message
from clinvia.services import scheduler_jobs
from clinvia.shared.timezones import utcnow

# 09:00 on 2030-01-08 in America/Sao_Paulo
NOW = datetime(2030, 1, 8, 12, 0)
SEND_TEXT_URL = f"{config.UAZAPI_BASE_URL}/send/text"


def notifications(db, notification_type):
    return db.query(Notification).filter(Notification.type == notification_type).all()


def test_daily_summary_once_per_day(db, factory, owner):
    factory.appointment(owner, NOW + timedelta(hours=2))
    factory.appointment(owner, NOW + timedelta(hours=4))
    factory.appointment(owner, NOW + timedelta(hours=5), status="canceled")
    factory.appointment(owner, NOW + timedelta(days=1))

    result = scheduler_jobs.daily_summary(db, now=NOW)
    assert result == {"success": True, "notifications_created": 1}

    (summary,) = notifications(db, "appointments_today")
    assert summary.related_user_id == owner.id
    assert summary.description == "Você tem 2 agendamento(s) hoje."
    assert summary.meta["date"] == "2030-01-08"

    assert scheduler_jobs.daily_summary(db, now=NOW)["notifications_created"] == 0


def test_daily_summary_again_on_the_next_day(db, factory, owner):
    factory.appointment(owner, NOW + timedelta(hours=2))
    factory.appointment(owner, NOW + timedelta(days=1, hours=2))

    assert scheduler_jobs.daily_summary(db, now=NOW)["notifications_created"] == 1
    assert scheduler_jobs.daily_summary(db, now=NOW + timedelta(days=1))["notifications_created"] == 1
    assert scheduler_jobs.daily_summary(db, now=NOW + timedelta(days=1))["notifications_created"] == 0

    dates = sorted(n.meta["date"] for n in notifications(db, "appointments_today"))
    assert dates == ["2030-01-08", "2030-01-09"]


@pytest.mark.parametrize(
    "day, expected",
    [
        (date(2030, 1, 8), date(2030, 1, 31)),
        (date(2030, 2, 1), date(2030, 2, 28)),
        (date(2028, 2, 29), date(2028, 2, 29)),
        (date(2030, 4, 30), date(2030, 4, 30)),
    ],
)
def test_commission_due_at_month_end(day, expected):
    assert scheduler_jobs._last_day_of_month(day) == expected


def test_reminders_inside_window_only(db, factory, owner):
    professional = factory.professional(owner, "Dra. Ana")
    contact = factory.contact(owner, push_name="Maria")
    factory.appointment(owner, NOW + timedelta(minutes=12), professional_id=professional.id, contact_id=contact.id)
    factory.appointment(owner, NOW + timedelta(minutes=30))

    assert scheduler_jobs.check_reminders(db, now=NOW)["reminders_created"] == 1
    (reminder,) = notifications(db, "appointment_reminder")
    assert reminder.description == "Agendamento de Maria com Dra. Ana começa em 10 minutos (09:12)."

    assert scheduler_jobs.check_reminders(db, now=NOW)["reminders_created"] == 0


def test_financial_due_today(db, owner):
    db.add_all(
        [
            Revenue(user_id=owner.id, item="Consulta", amount=200, due_date=date(2030, 1, 8), status="pending"),
            Revenue(user_id=owner.id, item="Paga", amount=100, due_date=date(2030, 1, 8), status="paid"),
            Expense(user_id=owner.id, item="Aluguel", amount=1500, due_date=date(2030, 1, 8), status="pending"),
        ]
    )
    db.commit()

    result = scheduler_jobs.check_financial_due(db, now=NOW)
    assert result["notifications_created"] == 2
    titles = sorted(n.title for n in notifications(db, "financial_due"))
    assert titles == ["Conta a Pagar Vence Hoje", "Conta a Receber Vence Hoje"]

    assert scheduler_jobs.check_financial_due(db, now=NOW)["notifications_created"] == 0


def test_financial_overdue(db, owner):
    late = Expense(user_id=owner.id, item="Luz", amount=300, due_date=date(2030, 1, 5), status="pending")
    today = Expense(user_id=owner.id, item="Água", amount=80, due_date=date(2030, 1, 8), status="pending")
    db.add_all([late, today])
    db.commit()

    result = scheduler_jobs.check_financial_overdue(db, now=NOW)
    assert result["marked_overdue"] == 1
    db.refresh(late)
    db.refresh(today)
    assert late.status == "overdue"
    assert today.status == "pending"
    assert len(notifications(db, "financial_overdue")) == 1


def test_auto_complete_books_revenue_and_commission(db, factory, owner):
    factory.settings(owner, auto_complete=True)
    professional = factory.professional(owner, "Dra. Ana", commission=10)
    service = factory.service(owner, "Limpeza")
    finished = factory.appointment(
        owner, NOW - timedelta(hours=2), professional_id=professional.id, service_id=service.id, price=200
    )
    upcoming = factory.appointment(owner, NOW + timedelta(hours=1), price=200)

    result = scheduler_jobs.auto_complete_appointments(db, now=NOW)
    assert result == {"success": True, "appointments_completed": 1, "revenues_created": 1}

    assert db.get(Appointment, finished.id).status == "completed"
    assert db.get(Appointment, upcoming.id).status == "confirmed"

    revenue = db.query(Revenue).one()
    assert revenue.amount == 200
    assert revenue.status == "paid"
    assert revenue.item == "Limpeza"
    assert revenue.appointment_id == finished.id
    assert revenue.due_date == date(2030, 1, 8)

    commission = db.query(Expense).one()
    assert commission.amount == pytest.approx(20)
    assert commission.status == "pending"
    assert commission.due_date == date(2030, 1, 31)
    assert commission.commission_revenue_id == revenue.id


def test_auto_complete_without_opted_in_tenants(db, factory, owner):
    factory.appointment(owner, NOW - timedelta(hours=2), price=200)

    result = scheduler_jobs.auto_complete_appointments(db, now=NOW)
    assert result == {"success": True, "message": "No users with auto_complete enabled"}


@pytest.fixture
def follow_up(db, factory, owner):
    instance = factory.instance(owner)
    contact = factory.contact(owner, instance_id=instance.id)
    conversation = factory.conversation(instance, contact)
    category = FollowUpCategory(user_id=owner.id, name="Orçamento")
    db.add(category)
    db.flush()
    db.add_all(
        [
            FollowUpTemplate(category_id=category.id, name="1", message="Oi, tudo bem?", time_minutes=10),
            FollowUpTemplate(category_id=category.id, name="2", message="Ainda tem interesse?", time_minutes=60),
        ]
    )
    follow_up = ConversationFollowUp(
        conversation_id=conversation.id,
        category_id=category.id,
        auto_send=True,
        current_template_index=0,
        next_send_at=utcnow() - timedelta(minutes=1),
    )
    db.add(follow_up)
    db.commit()
    return follow_up


async def test_follow_up_sends_and_schedules_next(db, fake_http, follow_up):
    fake_http.add("POST", SEND_TEXT_URL, {"messageid": "WA-9"})

    result = await scheduler_jobs.process_auto_follow_up(db)
    assert result["sent"] == 1
    assert result["errors"] == []

    db.refresh(follow_up)
    assert follow_up.current_template_index == 1
    assert follow_up.completed is False
    assert follow_up.next_send_at > utcnow() + timedelta(minutes=55)

    message = db.query(Message).one()
    assert message.body == "Oi, tudo bem?"
    assert message.evolution_id == "WA-9"


async def test_follow_up_completes_after_last_template(db, fake_http, follow_up):
    fake_http.add("POST", SEND_TEXT_URL, {"messageid": "WA-10"})
    follow_up.current_template_index = 1
    db.commit()

    result = await scheduler_jobs.process_auto_follow_up(db)
    assert result["completed"] == 1

    db.refresh(follow_up)
    assert follow_up.completed is True
    assert follow_up.next_send_at is None


async def test_follow_up_skips_disconnected_instance(db, fake_http, follow_up):
    follow_up.conversation.instance.status = "disconnected"
    db.commit()

    result = await scheduler_jobs.process_auto_follow_up(db)
    assert result["sent"] == 0
    assert "instance not connected" in result["errors"][0]
    assert fake_http.requests == []


def test_scheduler_endpoint(client, headers, owner):
    response = client.post("/scheduler-notifications", json={"action": "check_financial_due"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["success"] is True

    response = client.post(
        "/scheduler-notifications", json={"action": "process_auto_follow_up"}, headers=headers
    )
    assert response.json()["message"] == "No pending follow ups"

    response = client.post("/scheduler-notifications", json={"action": "cleanup"}, headers=headers)
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid action"}

    response = client.post("/scheduler-notifications", json={"action": "daily_summary"})
    assert response.status_code == 401
