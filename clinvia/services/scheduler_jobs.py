"""
Scheduled Jobs
Notifications, financial checks, appointment auto-completion and automatic follow-ups.
Run by the ARQ worker on cron and on demand through POST /scheduler-notifications.
"""

import inspect
import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Any, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session, joinedload

from ..models import Appointment, Notification, Professional, SchedulingSettings
from ..models_financial import Expense, ExpenseCategory, Revenue, RevenueCategory
from ..models_messaging import Conversation, ConversationFollowUp, FollowUpTemplate, Message
from ..shared.timezones import get_tenant_timezone, load_zone, local_day_bounds_utc, utc_to_local, utcnow
from . import whatsapp_gateway
from .google_calendar_service import format_price_brl
from .notification_service import create_notification, notification_exists

logger = logging.getLogger(__name__)

REMINDER_WINDOW_START = timedelta(minutes=10)
REMINDER_WINDOW_END = timedelta(minutes=15)

REVENUE_CATEGORY_NAME = "Agendamento"
COMMISSION_CATEGORY_NAME = "Comissão"


def _local_today(now: Optional[datetime] = None) -> date:
    """Today in the default timezone (now is naive UTC)"""
    return utc_to_local(now or utcnow(), load_zone(None)).date()


# ============================================================================
# APPOINTMENT NOTIFICATIONS
# ============================================================================


def daily_summary(db: Session, now: Optional[datetime] = None) -> dict:
    """One appointments_today notification per owner with appointments today"""
    now = now or utcnow()
    today = _local_today(now)
    start, end = local_day_bounds_utc(today, load_zone(None))

    appointments = (
        db.query(Appointment)
        .filter(
            Appointment.start_time >= start,
            Appointment.start_time < end,
            Appointment.type == "appointment",
            Appointment.status != "canceled",
        )
        .all()
    )

    by_user: dict[str, list[Appointment]] = defaultdict(list)
    for appointment in appointments:
        by_user[appointment.user_id].append(appointment)

    already_notified = _summary_recipients(db, today.isoformat(), start)
    created = 0
    for user_id, user_appointments in by_user.items():
        if user_id in already_notified:
            continue

        count = len(user_appointments)
        create_notification(
            db,
            related_user_id=user_id,
            notification_type="appointments_today",
            title="Agenda de Hoje",
            description=f"Você tem {count} agendamento(s) hoje.",
            metadata={
                "count": count,
                "date": today.isoformat(),
                "appointment_ids": [a.id for a in user_appointments],
            },
            created_at=now,
        )
        created += 1

    logger.info(f"📅 Daily summary: {created} notification(s) created")
    return {"success": True, "notifications_created": created}


def _summary_recipients(db: Session, day: str, day_start: datetime) -> set[str]:
    """Owners that already got today's summary (the job may run more than once a day)"""
    rows = (
        db.query(Notification)
        .filter(Notification.type == "appointments_today", Notification.created_at >= day_start)
        .all()
    )
    return {n.related_user_id for n in rows if (n.meta or {}).get("date") == day}


def check_reminders(db: Session, now: Optional[datetime] = None) -> dict:
    """Remind the owner of appointments starting in 10 to 15 minutes, once per appointment"""
    now = now or utcnow()

    appointments = (
        db.query(Appointment)
        .options(joinedload(Appointment.contact), joinedload(Appointment.professional))
        .filter(
            Appointment.start_time >= now + REMINDER_WINDOW_START,
            Appointment.start_time <= now + REMINDER_WINDOW_END,
            Appointment.type == "appointment",
            Appointment.status != "canceled",
        )
        .all()
    )

    created = 0
    for appointment in appointments:
        if notification_exists(db, "appointment_reminder", "appointment_id", appointment.id):
            continue

        contact_name = (appointment.contact.push_name if appointment.contact else None) or "Cliente"
        professional_name = appointment.professional.name if appointment.professional else "Profissional"
        tz = get_tenant_timezone(db, appointment.user_id)
        at = utc_to_local(appointment.start_time, tz).strftime("%H:%M")

        create_notification(
            db,
            related_user_id=appointment.user_id,
            notification_type="appointment_reminder",
            title="Próximo Agendamento",
            description=f"Agendamento de {contact_name} com {professional_name} começa em 10 minutos ({at}).",
            metadata={"appointment_id": appointment.id},
        )
        created += 1

    logger.info(f"⏰ Reminders: {created} created")
    return {"success": True, "reminders_created": created}


# ============================================================================
# FINANCIAL
# ============================================================================


def check_financial_due(db: Session, now: Optional[datetime] = None) -> dict:
    """Notify pending revenues and expenses due today"""
    today = _local_today(now)
    created = 0

    for model, key, title, label in (
        (Revenue, "revenue_id", "Conta a Receber Vence Hoje", "Receita"),
        (Expense, "expense_id", "Conta a Pagar Vence Hoje", "Despesa"),
    ):
        rows = db.query(model).filter(model.status == "pending", model.due_date == today).all()
        for row in rows:
            if notification_exists(db, "financial_due", key, row.id):
                continue
            create_notification(
                db,
                related_user_id=row.user_id,
                notification_type="financial_due",
                title=title,
                description=f"{label} '{row.item}' de {format_price_brl(row.amount)} vence hoje.",
                metadata={key: row.id, "due_date": today.isoformat()},
            )
            created += 1

    logger.info(f"💰 Financial due check: {created} notification(s)")
    return {"success": True, "message": "Financial due check completed", "notifications_created": created}


def check_financial_overdue(db: Session, now: Optional[datetime] = None) -> dict:
    """Pending revenues and expenses past their due date become overdue"""
    today = _local_today(now)
    marked = 0

    for model, key, title, label in (
        (Revenue, "revenue_id", "Conta a Receber Vencida", "Receita"),
        (Expense, "expense_id", "Conta a Pagar Vencida", "Despesa"),
    ):
        rows = db.query(model).filter(model.status == "pending", model.due_date < today).all()
        for row in rows:
            row.status = "overdue"
            db.commit()
            marked += 1
            create_notification(
                db,
                related_user_id=row.user_id,
                notification_type="financial_overdue",
                title=title,
                description=f"{label} '{row.item}' de {format_price_brl(row.amount)} está vencida.",
                metadata={key: row.id, "due_date": row.due_date.isoformat()},
            )

    logger.info(f"💸 Financial overdue check: {marked} item(s) marked overdue")
    return {"success": True, "message": "Financial overdue check completed", "marked_overdue": marked}


def _get_or_create_category(db: Session, model, user_id: str, name: str, description: str):
    category = db.query(model).filter(model.user_id == user_id, model.name == name).first()
    if category:
        return category
    category = model(user_id=user_id, name=name, description=description)
    db.add(category)
    db.flush()
    return category


def _last_day_of_month(day: date) -> date:
    return day + relativedelta(day=31)


def auto_complete_appointments(db: Session, now: Optional[datetime] = None) -> dict:
    """
    Complete confirmed appointments that already ended, for tenants with auto_complete.
    Paid appointments produce a revenue; commissioned professionals also get a
    pending commission expense due at the end of the month.
    """
    now = now or utcnow()

    user_ids = [
        s.user_id
        for s in db.query(SchedulingSettings).filter(SchedulingSettings.auto_complete.is_(True)).all()
    ]
    if not user_ids:
        return {"success": True, "message": "No users with auto_complete enabled"}

    appointments = (
        db.query(Appointment)
        .options(joinedload(Appointment.service), joinedload(Appointment.professional))
        .filter(
            Appointment.user_id.in_(user_ids),
            Appointment.status == "confirmed",
            Appointment.type == "appointment",
            Appointment.end_time <= now,
        )
        .all()
    )

    completed = revenues_created = 0
    for appointment in appointments:
        try:
            appointment.status = "completed"
            completed += 1

            if appointment.price and appointment.price > 0:
                _book_revenue(db, appointment, now)
                revenues_created += 1

            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Error completing appointment {appointment.id}: {str(e)}")

    logger.info(f"✅ Auto-complete: {completed} appointment(s), {revenues_created} revenue(s)")
    return {"success": True, "appointments_completed": completed, "revenues_created": revenues_created}


def _book_revenue(db: Session, appointment: Appointment, now: datetime) -> Revenue:
    tz = get_tenant_timezone(db, appointment.user_id)
    appointment_day = utc_to_local(appointment.start_time, tz).date()

    category = _get_or_create_category(
        db, RevenueCategory, appointment.user_id, REVENUE_CATEGORY_NAME, "Receitas de agendamentos"
    )
    revenue = Revenue(
        user_id=appointment.user_id,
        category_id=category.id,
        product_service_id=appointment.service_id,
        professional_id=appointment.professional_id,
        contact_id=appointment.contact_id,
        appointment_id=appointment.id,
        item=appointment.service.name if appointment.service else "Serviço",
        description=appointment.description or "Receita de agendamento",
        amount=appointment.price,
        payment_method="other",
        due_date=appointment_day,
        paid_date=appointment_day,
        status="paid",
        is_recurring=False,
    )
    db.add(revenue)
    db.flush()

    professional: Optional[Professional] = appointment.professional
    if professional and professional.commission and professional.commission > 0:
        commission_category = _get_or_create_category(
            db, ExpenseCategory, appointment.user_id, COMMISSION_CATEGORY_NAME, "Comissões de profissionais"
        )
        db.add(
            Expense(
                user_id=appointment.user_id,
                category_id=commission_category.id,
                item=f"Comissão {professional.name}",
                description="Comissionamento de profissional",
                amount=appointment.price * professional.commission / 100,
                payment_method="other",
                due_date=_last_day_of_month(utc_to_local(now, tz).date()),
                status="pending",
                is_recurring=False,
                commission_revenue_id=revenue.id,
            )
        )
        logger.info(f"🧾 Commission booked for {professional.name} on appointment {appointment.id}")

    return revenue


# ============================================================================
# AUTOMATIC FOLLOW-UPS
# ============================================================================


async def process_auto_follow_up(db: Session, now: Optional[datetime] = None) -> dict:
    """Send the current template of every due follow-up and schedule the next one"""
    now = now or utcnow()
    results: dict[str, Any] = {"processed": 0, "sent": 0, "completed": 0, "errors": []}

    due = (
        db.query(ConversationFollowUp)
        .options(joinedload(ConversationFollowUp.conversation).joinedload(Conversation.instance))
        .options(joinedload(ConversationFollowUp.conversation).joinedload(Conversation.contact))
        .filter(
            ConversationFollowUp.auto_send.is_(True),
            ConversationFollowUp.completed.is_(False),
            ConversationFollowUp.next_send_at <= now,
        )
        .all()
    )
    if not due:
        return {"success": True, "message": "No pending follow ups", **results}

    for follow_up in due:
        results["processed"] += 1
        conversation = follow_up.conversation
        if not conversation or not conversation.instance or not conversation.contact:
            results["errors"].append(f"Follow up {follow_up.id}: missing conversation data")
            continue
        if conversation.instance.status != "connected":
            results["errors"].append(f"Follow up {follow_up.id}: instance not connected")
            continue

        templates = (
            db.query(FollowUpTemplate)
            .filter(FollowUpTemplate.category_id == follow_up.category_id)
            .order_by(FollowUpTemplate.time_minutes.asc())
            .all()
        )
        if not templates:
            results["errors"].append(f"Follow up {follow_up.id}: no templates")
            continue

        index = follow_up.current_template_index or 0
        if index >= len(templates):
            follow_up.completed = True
            follow_up.auto_send = False
            db.commit()
            results["completed"] += 1
            continue

        template = templates[index]
        try:
            response = await whatsapp_gateway.send_text(
                conversation.instance.apikey, conversation.contact.number, template.message
            )
        except whatsapp_gateway.GatewayError as e:
            logger.error(f"❌ Follow up {follow_up.id} send failed: {str(e)}")
            results["errors"].append(f"Follow up {follow_up.id}: send failed - {str(e)}")
            continue

        db.add(
            Message(
                conversation_id=conversation.id,
                user_id=conversation.user_id,
                body=template.message,
                direction="outbound",
                message_type="text",
                evolution_id=whatsapp_gateway.gateway_message_id(response),
                status="sent",
            )
        )
        sent_at = utcnow()
        conversation.last_message = template.message
        conversation.last_message_at = sent_at

        next_index = index + 1
        follow_up.current_template_index = next_index
        follow_up.last_seen_template_id = template.id
        if next_index < len(templates):
            follow_up.next_send_at = sent_at + timedelta(minutes=templates[next_index].time_minutes)
        else:
            follow_up.next_send_at = None
            follow_up.completed = True
            results["completed"] += 1
        db.commit()

        results["sent"] += 1
        logger.info(f"📨 Follow up {follow_up.id} sent template {next_index}/{len(templates)}")

    logger.info(f"🔁 Auto follow-up done: {results['sent']} sent, {len(results['errors'])} error(s)")
    return {"success": True, **results}


JOBS = {
    "daily_summary": daily_summary,
    "check_reminders": check_reminders,
    "check_financial_due": check_financial_due,
    "check_financial_overdue": check_financial_overdue,
    "auto_complete_appointments": auto_complete_appointments,
    "process_auto_follow_up": process_auto_follow_up,
}


async def run_job(db: Session, action: str) -> dict:
    """Run one job by name; raises KeyError for unknown names"""
    job = JOBS[action]
    result = job(db)
    if inspect.isawaitable(result):
        result = await result
    return result
