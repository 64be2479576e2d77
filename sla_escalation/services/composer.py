"""
Notification Composer for finding SLA events.

Builds the email subject/body and the short WhatsApp text for:
- Due-date warnings (to the finding's owner)
- Level 1 / Level 2 escalations (to tenant management)

English is the base language; Arabic renders right-to-left.
Pure string formatting - no I/O.
"""
from dataclasses import dataclass
from html import escape
from typing import Optional

from sla_escalation.models.enums import EventKind, Language
from sla_escalation.models.schemas import EffectivePolicy, Finding


@dataclass(frozen=True)
class ComposedMessage:
    """A rendered notification for one recipient."""
    subject: str
    email_body: str
    sms_body: str
    language: Language


CLASSIFICATION_LABELS = {
    "critical_nc": {Language.EN: "Critical Non-Conformance", Language.AR: "عدم مطابقة حرجة"},
    "major_nc": {Language.EN: "Major Non-Conformance", Language.AR: "عدم مطابقة رئيسية"},
    "minor_nc": {Language.EN: "Minor Non-Conformance", Language.AR: "عدم مطابقة بسيطة"},
    "observation": {Language.EN: "Observation", Language.AR: "ملاحظة"},
}

SEVERITY_MARKERS = {
    1: {Language.EN: "ESCALATED", Language.AR: "مُصعّد"},
    2: {Language.EN: "CRITICAL", Language.AR: "حرج"},
}

LEVEL_COLORS = {1: "#f59e0b", 2: "#dc2626"}


def classification_label(classification: str, language: Language) -> str:
    """Human-readable classification, or the raw code if unknown."""
    labels = CLASSIFICATION_LABELS.get(classification)
    if not labels:
        return classification
    return labels.get(language) or labels[Language.EN]


def severity_marker(level: int, language: Language) -> str:
    return SEVERITY_MARKERS[2 if level >= 2 else 1][language]


class NotificationTemplates:
    """Template definitions using simple string formatting."""

    EN_WRAPPER = '<div style="font-family: Arial, sans-serif;">{content}</div>'
    AR_WRAPPER = (
        '<div dir="rtl" style="font-family: \'IBM Plex Sans Arabic\', Arial, sans-serif;">'
        '{content}</div>'
    )

    @classmethod
    def _wrap(cls, content: str, language: Language) -> str:
        wrapper = cls.AR_WRAPPER if language == Language.AR else cls.EN_WRAPPER
        return wrapper.format(content=content)

    @classmethod
    def warning(
        cls,
        reference_id: str,
        class_label: str,
        description: Optional[str],
        days_until_due: int,
        language: Language
    ) -> tuple[str, str, str]:
        """Generate a due-date warning. Returns (subject, html, text)."""
        ref = escape(reference_id)
        label = escape(class_label)

        if language == Language.AR:
            subject = f"⚠️ تذكير: نتيجة الفحص تستحق قريباً - {reference_id}"
            html_content = f"""
            <h2>تذكير بموعد استحقاق النتيجة</h2>
            <p>النتيجة <strong>{ref}</strong> ({label}) تستحق خلال <strong>{days_until_due} يوم</strong>.</p>
            <p><strong>الوصف:</strong> {escape(description or 'غير متوفر')}</p>
            <p>يرجى اتخاذ الإجراء المطلوب قبل تاريخ الاستحقاق.</p>
"""
            text = f"⚠️ تذكير: النتيجة {reference_id} تستحق خلال {days_until_due} يوم. يرجى اتخاذ الإجراء."
        else:
            subject = f"⚠️ Reminder: Inspection Finding Due Soon - {reference_id}"
            html_content = f"""
            <h2>Finding Due Date Reminder</h2>
            <p>Finding <strong>{ref}</strong> ({label}) is due in <strong>{days_until_due} days</strong>.</p>
            <p><strong>Description:</strong> {escape(description or 'N/A')}</p>
            <p>Please take the required action before the due date.</p>
"""
            text = f"⚠️ Reminder: Finding {reference_id} is due in {days_until_due} days. Please take action."

        return subject, cls._wrap(html_content, language), text

    @classmethod
    def escalation(
        cls,
        reference_id: str,
        class_label: str,
        description: Optional[str],
        level: int,
        days_overdue: int,
        language: Language
    ) -> tuple[str, str, str]:
        """Generate a level 1/2 escalation. Returns (subject, html, text)."""
        emoji = "🚨" if level >= 2 else "⚠️"
        marker = severity_marker(level, language)
        color = LEVEL_COLORS[2 if level >= 2 else 1]
        ref = escape(reference_id)
        label = escape(class_label)

        if language == Language.AR:
            subject = f"{emoji} [{marker}] تصعيد المستوى {level}: نتيجة فحص متأخرة - {reference_id}"
            html_content = f"""
            <h2 style="color: {color};">تصعيد المستوى {level} - {marker}</h2>
            <p>النتيجة <strong>{ref}</strong> ({label}) متأخرة بـ <strong>{days_overdue} يوم</strong>.</p>
            <p><strong>الوصف:</strong> {escape(description or 'غير متوفر')}</p>
            <p>يتطلب هذا الأمر اهتمامك الفوري.</p>
"""
            text = f"{emoji} [{marker}] تصعيد L{level}: النتيجة {reference_id} متأخرة {days_overdue} يوم. يتطلب إجراء فوري."
        else:
            subject = f"{emoji} [{marker}] Level {level} Escalation: Overdue Finding - {reference_id}"
            html_content = f"""
            <h2 style="color: {color};">Level {level} Escalation - {marker}</h2>
            <p>Finding <strong>{ref}</strong> ({label}) is <strong>{days_overdue} days overdue</strong>.</p>
            <p><strong>Description:</strong> {escape(description or 'N/A')}</p>
            <p>This requires your immediate attention.</p>
"""
            text = f"{emoji} [{marker}] L{level} Escalation: Finding {reference_id} is {days_overdue} days overdue. Immediate action required."

        return subject, cls._wrap(html_content, language), text


def compose(
    event_kind: EventKind,
    finding: Finding,
    policy: EffectivePolicy,
    language: Language,
    days: int
) -> ComposedMessage:
    """
    Compose the notification for an SLA event.

    Args:
        event_kind: warning, escalation_1 or escalation_2
        finding: The finding being notified about
        policy: Effective policy (supplies the classification label key)
        language: Recipient's language
        days: Days until due (warning) or days overdue (escalation)
    """
    label = classification_label(policy.classification or finding.classification, language)

    if event_kind == EventKind.WARNING:
        subject, html_body, text_body = NotificationTemplates.warning(
            reference_id=finding.reference_id,
            class_label=label,
            description=finding.description,
            days_until_due=days,
            language=language,
        )
    else:
        subject, html_body, text_body = NotificationTemplates.escalation(
            reference_id=finding.reference_id,
            class_label=label,
            description=finding.description,
            level=event_kind.escalation_level,
            days_overdue=days,
            language=language,
        )

    return ComposedMessage(
        subject=subject,
        email_body=html_body,
        sms_body=text_body,
        language=language,
    )
