"""
WhatsApp reminders for upcoming parties.

Nothing is sent from here: each reminder is logged and returned as a wa.me
link the tenant opens to deliver the message. An appointment gets at most one
logged reminder with status "sent".
"""
import logging
import re
from datetime import date, datetime, timedelta
from typing import List, Optional
from urllib.parse import quote

from sqlalchemy.orm import Session

from . import crud, models
from .exceptions import PersistenceError

logger = logging.getLogger(__name__)

REMINDER_WINDOW = timedelta(hours=24)

WEEKDAYS = ["segunda-feira", "terça-feira", "quarta-feira", "quinta-feira", "sexta-feira", "sábado", "domingo"]


def format_event_date(event_date: date) -> str:
    """Long pt-BR date, e.g. "sábado, 15/06/2024"."""
    return f"{WEEKDAYS[event_date.weekday()]}, {event_date.strftime('%d/%m/%Y')}"


def build_message(appointment: models.Appointment, tenant_name: Optional[str]) -> str:
    message = (
        f"🎉 Olá {appointment.client_name}!\n\n"
        f"Lembramos que sua festa está agendada para *{format_event_date(appointment.event_date)}*"
    )
    if appointment.event_time:
        message += f" às *{appointment.event_time}*"
    if appointment.location:
        message += f"\n📍 Local: {appointment.location}"
    if appointment.event_type:
        message += f"\n🎈 Evento: {appointment.event_type}"
    message += "\n\nQualquer dúvida, entre em contato conosco!"
    message += f"\n\n{tenant_name or 'Equipe'}"
    return message


def whatsapp_link(phone: str, message: str) -> str:
    digits = re.sub(r"\D", "", phone)
    return f"https://wa.me/55{digits}?text={quote(message, safe='')}"


def send_reminders(db: Session, tenant_id: Optional[str] = None, now: Optional[datetime] = None) -> List[dict]:
    """
    Log a reminder for every party in the next 24 hours that has none yet.

    Args:
        db: Database session
        tenant_id: Only appointments of this tenant (optional)
        now: Reference time, defaults to the current UTC time

    Returns:
        One entry per logged reminder: appointment_id, client_name,
        event_date, whatsapp_link and reminder_id
    """
    now = now or datetime.utcnow()
    appointments = crud.get_upcoming_appointments(db, now.date(), (now + REMINDER_WINDOW).date(), tenant_id)
    logger.info(f"Found {len(appointments)} appointments in the next 24 hours")

    results = []
    for appointment in appointments:
        if crud.has_sent_reminder(db, appointment.id):
            logger.info(f"Reminder already sent for appointment {appointment.id}")
            continue
        if not appointment.client_phone:
            logger.info(f"No phone number for appointment {appointment.id}")
            continue

        message = build_message(appointment, appointment.tenant.name if appointment.tenant else None)
        try:
            reminder = crud.create_reminder_log(db, appointment, message)
        except PersistenceError:
            logger.error(f"Reminder for appointment {appointment.id} not logged")
            continue

        results.append({
            "appointment_id": appointment.id,
            "client_name": appointment.client_name,
            "event_date": appointment.event_date,
            "whatsapp_link": whatsapp_link(appointment.client_phone, message),
            "reminder_id": reminder.id,
        })
        logger.info(f"Reminder logged for appointment {appointment.id} - {appointment.client_name}")

    return results
