"""
Locale resource bundle.

Every user-facing string that depends on a business's language is looked up
here by (locale, key). Callers resolve a `MessageBundle` once and read from it
instead of branching on the language inline.
"""

from dataclasses import dataclass
from datetime import datetime

DEFAULT_LANGUAGE = "hebrew"
FALLBACK_LANGUAGE = "english"

_MESSAGES: dict[str, dict[str, str]] = {
    "english": {
        "reminder_template": (
            "Hi{name}! Reminder from {business}: You have an {service} on {date} at {time}. "
            "Reply YES to confirm or CANCEL to cancel."
        ),
        "default_service": "appointment",
        "missed_call_textback": (
            "Hi, we missed your call to {business}. How can we help? "
            "You can reply to this message."
        ),
        "voice_unavailable": (
            "Sorry, we are unable to answer your call right now. We will get back to you soon."
        ),
        "date_format": "{weekday}, {month} {day}",
        "conflict_single": "This time overlaps with an existing appointment.",
        "conflict_multiple": "This time overlaps with {count} existing appointments.",
        "reschedule_confirm": "Moving this appointment to {date} at {time} will overlap. Proceed anyway?",
        "rescheduled": "Appointment moved to {date} at {time}.",
        "booked": "Appointment booked for {date} at {time}.",
        "persistence_failed": "Failed to save the appointment. Please try again.",
        "sms_opted_out": (
            "You have been unsubscribed. You will no longer receive messages from us."
        ),
        "sms_reply_failed": "Sorry, an error occurred. Please try again later.",
        "sms_reply_default": "Thank you for your message.",
    },
    "hebrew": {
        "reminder_template": (
            'שלום{name}! תזכורת מ{business}: יש לך {service} ב-{date} בשעה {time}. '
            'השב "כן" לאישור או "ביטול" לביטול התור.'
        ),
        "default_service": "תור",
        "missed_call_textback": (
            "שלום, קיבלנו שיחה שלא נענתה מהמספר שלך ל{business}. איך נוכל לעזור? "
            "ניתן להשיב להודעה זו."
        ),
        "voice_unavailable": "מצטערים, אין אפשרות לענות כרגע. נחזור אליכם בהקדם.",
        "date_format": "{weekday}, {day} ב{month}",
        "conflict_single": "השעה הזו חופפת לתור קיים.",
        "conflict_multiple": "השעה הזו חופפת ל-{count} תורים קיימים.",
        "reschedule_confirm": "העברת התור ל{date} בשעה {time} תיצור חפיפה. להמשיך בכל זאת?",
        "rescheduled": "התור הועבר ל{date} בשעה {time}.",
        "booked": "התור נקבע ל{date} בשעה {time}.",
        "persistence_failed": "שמירת התור נכשלה. נסו שוב.",
        "sms_opted_out": "הוסרת מרשימת ההודעות שלנו. לא תקבל עוד הודעות מאיתנו.",
        "sms_reply_failed": "מצטערים, אירעה שגיאה. אנא נסו שוב מאוחר יותר.",
        "sms_reply_default": "תודה על פנייתך.",
    },
    "arabic": {
        "reminder_template": (
            'مرحبا{name}! تذكير من {business}: لديك {service} في {date} الساعة {time}. '
            'رد بـ"نعم" للتأكيد أو "إلغاء" للإلغاء.'
        ),
        "default_service": "موعد",
        "date_format": "{weekday}، {day} {month}",
    },
    "russian": {
        "reminder_template": (
            'Здравствуйте{name}! Напоминание от {business}: у вас {service} {date} в {time}. '
            'Ответьте "ДА" для подтверждения или "ОТМЕНА" для отмены.'
        ),
        "default_service": "запись",
        "date_format": "{weekday}, {day} {month}",
    },
    "spanish": {
        "reminder_template": (
            "¡Hola{name}! Recordatorio de {business}: Tienes {service} el {date} a las {time}. "
            "Responde SÍ para confirmar o CANCELAR para cancelar."
        ),
        "default_service": "cita",
        "date_format": "{weekday}, {day} de {month}",
    },
    "french": {
        "reminder_template": (
            "Bonjour{name}! Rappel de {business}: Vous avez {service} le {date} à {time}. "
            "Répondez OUI pour confirmer ou ANNULER pour annuler."
        ),
        "default_service": "rendez-vous",
        "date_format": "{weekday} {day} {month}",
    },
    "german": {
        "reminder_template": (
            "Hallo{name}! Erinnerung von {business}: Sie haben {service} am {date} um {time}. "
            "Antworten Sie JA zur Bestätigung oder ABBRECHEN zum Stornieren."
        ),
        "default_service": "Termin",
        "date_format": "{weekday}, {day}. {month}",
    },
}

# Monday first, matching datetime.weekday()
_WEEKDAYS: dict[str, tuple[str, ...]] = {
    "english": ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"),
    "hebrew": ("יום שני", "יום שלישי", "יום רביעי", "יום חמישי", "יום שישי", "שבת", "יום ראשון"),
    "arabic": ("الاثنين", "الثلاثاء", "الأربعاء", "الخميس", "الجمعة", "السبت", "الأحد"),
    "russian": (
        "понедельник", "вторник", "среда", "четверг", "пятница", "суббота", "воскресенье",
    ),
    "spanish": ("lunes", "martes", "miércoles", "jueves", "viernes", "sábado", "domingo"),
    "french": ("lundi", "mardi", "mercredi", "jeudi", "vendredi", "samedi", "dimanche"),
    "german": ("Montag", "Dienstag", "Mittwoch", "Donnerstag", "Freitag", "Samstag", "Sonntag"),
}

_MONTHS: dict[str, tuple[str, ...]] = {
    "english": (
        "January", "February", "March", "April", "May", "June",
        "July", "August", "September", "October", "November", "December",
    ),
    "hebrew": (
        "ינואר", "פברואר", "מרץ", "אפריל", "מאי", "יוני",
        "יולי", "אוגוסט", "ספטמבר", "אוקטובר", "נובמבר", "דצמבר",
    ),
    "arabic": (
        "يناير", "فبراير", "مارس", "أبريل", "مايو", "يونيو",
        "يوليو", "أغسطس", "سبتمبر", "أكتوبر", "نوفمبر", "ديسمبر",
    ),
    "russian": (
        "января", "февраля", "марта", "апреля", "мая", "июня",
        "июля", "августа", "сентября", "октября", "ноября", "декабря",
    ),
    "spanish": (
        "enero", "febrero", "marzo", "abril", "mayo", "junio",
        "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
    ),
    "french": (
        "janvier", "février", "mars", "avril", "mai", "juin",
        "juillet", "août", "septembre", "octobre", "novembre", "décembre",
    ),
    "german": (
        "Januar", "Februar", "März", "April", "Mai", "Juni",
        "Juli", "August", "September", "Oktober", "November", "Dezember",
    ),
}

# Languages that read the clock as 24h
_TWENTY_FOUR_HOUR = frozenset({"hebrew", "arabic", "russian", "spanish", "french", "german"})

# Twilio <Say> voices by BCP-47 code and gender
POLLY_VOICES: dict[str, dict[str, str]] = {
    "he-IL": {"female": "Polly.Adina", "male": "Polly.Adina"},
    "en-US": {"female": "Polly.Joanna", "male": "Polly.Matthew"},
    "en-GB": {"female": "Polly.Amy", "male": "Polly.Brian"},
    "ar-XA": {"female": "Polly.Zeina", "male": "Polly.Zeina"},
    "ru-RU": {"female": "Polly.Tatyana", "male": "Polly.Maxim"},
    "es-ES": {"female": "Polly.Conchita", "male": "Polly.Enrique"},
    "fr-FR": {"female": "Polly.Celine", "male": "Polly.Mathieu"},
    "de-DE": {"female": "Polly.Marlene", "male": "Polly.Hans"},
    "pt-BR": {"female": "Polly.Vitoria", "male": "Polly.Ricardo"},
    "pt-PT": {"female": "Polly.Ines", "male": "Polly.Cristiano"},
    "zh-CN": {"female": "Polly.Zhiyu", "male": "Polly.Zhiyu"},
    "ja-JP": {"female": "Polly.Mizuki", "male": "Polly.Takumi"},
    "ko-KR": {"female": "Polly.Seoyeon", "male": "Polly.Seoyeon"},
    "it-IT": {"female": "Polly.Carla", "male": "Polly.Giorgio"},
    "nl-NL": {"female": "Polly.Lotte", "male": "Polly.Ruben"},
    "pl-PL": {"female": "Polly.Ewa", "male": "Polly.Jacek"},
    "tr-TR": {"female": "Polly.Filiz", "male": "Polly.Filiz"},
    "hi-IN": {"female": "Polly.Aditi", "male": "Polly.Aditi"},
    "th-TH": {"female": "Polly.Achara", "male": "Polly.Achara"},
    "vi-VN": {"female": "Polly.Joanna", "male": "Polly.Matthew"},
}


def primary_language(ai_language: str | None) -> str:
    """
    Primary language from a business's `ai_language` column.

    Accepted shapes:
        "hebrew:hebrew,english:true"  primary, enabled languages, autodetect
        "hebrew,english"              legacy list, first entry wins
        "hebrew"                      single language
    """
    value = (ai_language or DEFAULT_LANGUAGE).strip()
    parts = value.split(":")
    if len(parts) >= 2:
        return parts[0].strip() or DEFAULT_LANGUAGE
    if "," in value:
        return value.split(",")[0].strip() or DEFAULT_LANGUAGE
    return value


def language_for_voice(voice_language: str) -> str:
    """Bundle language for a BCP-47 voice code (he-IL -> hebrew)."""
    return "hebrew" if voice_language.lower().startswith("he") else FALLBACK_LANGUAGE


def polly_voice(voice_language: str, gender: str) -> str:
    voices = POLLY_VOICES.get(voice_language) or POLLY_VOICES["en-US"]
    return voices.get(gender) or "Polly.Joanna"


@dataclass(frozen=True)
class MessageBundle:
    """Messages for one language, falling back to English per key."""

    language: str

    @classmethod
    def for_business(cls, ai_language: str | None) -> "MessageBundle":
        return cls(primary_language(ai_language))

    @property
    def supported(self) -> bool:
        return self.language in _MESSAGES

    def get(self, key: str) -> str:
        messages = _MESSAGES.get(self.language, {})
        if key in messages:
            return messages[key]
        return _MESSAGES[FALLBACK_LANGUAGE][key]

    def format_date(self, value: datetime) -> str:
        language = self.language if self.language in _WEEKDAYS else FALLBACK_LANGUAGE
        pattern = _MESSAGES[language]["date_format"]
        return pattern.format(
            weekday=_WEEKDAYS[language][value.weekday()],
            month=_MONTHS[language][value.month - 1],
            day=value.day,
        )

    def format_time(self, value: datetime) -> str:
        if self.language in _TWENTY_FOUR_HOUR:
            return value.strftime("%H:%M")
        return value.strftime("%I:%M %p")

    def conflict_summary(self, count: int) -> str:
        if count == 1:
            return self.get("conflict_single")
        return self.get("conflict_multiple").format(count=count)


def console_bundle(accept_language: str | None, ai_language: str | None) -> MessageBundle:
    """
    Bundle for console responses: the browser's Accept-Language when it names
    Hebrew or English, else the business's primary language.
    """
    if accept_language:
        tag = accept_language.split(",")[0].strip().lower()
        if tag.startswith("he") or tag.startswith("iw"):
            return MessageBundle("hebrew")
        if tag.startswith("en"):
            return MessageBundle(FALLBACK_LANGUAGE)
    return MessageBundle.for_business(ai_language)
