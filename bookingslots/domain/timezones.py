"""
Timezone helpers: wall-clock to UTC conversion and phone based zone guessing.
"""

import logging
import re
from datetime import date

import pendulum
from pendulum import DateTime

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60


def local_time_to_utc(
    year: int,
    month: int,
    day: int,
    hour: int,
    minute: int,
    timezone: str,
) -> DateTime:
    """
    Convert a wall-clock reading in ``timezone`` into a UTC instant.

    The fields are first read as if they were already UTC (the reference
    instant). The reference instant is then shown as wall clock in the target
    zone, and the difference between that reading and the requested one is
    the zone offset, which is subtracted once.

    This single-step estimate uses the offset in force at the reference
    instant, so a wall-clock time inside a DST gap or overlap on a transition
    day may come out one hour off. Example: 2024-03-10 02:30 in
    America/New_York gives 07:30Z.
    """
    reference = pendulum.datetime(year, month, day, hour, minute, tz="UTC")
    local = reference.in_timezone(timezone)

    day_difference = (
        date(local.year, local.month, local.day).toordinal()
        - date(year, month, day).toordinal()
    )
    local_minutes = day_difference * MINUTES_PER_DAY + local.hour * 60 + local.minute
    requested_minutes = hour * 60 + minute
    offset_minutes = local_minutes - requested_minutes

    return reference.subtract(minutes=offset_minutes)


# Country calling code -> primary IANA zone for that country
COUNTRY_TIMEZONES = {
    # North America
    "1": "America/New_York",
    # Asia-Pacific
    "60": "Asia/Kuala_Lumpur",
    "61": "Australia/Sydney",
    "62": "Asia/Jakarta",
    "63": "Asia/Manila",
    "64": "Pacific/Auckland",
    "65": "Asia/Singapore",
    "66": "Asia/Bangkok",
    "81": "Asia/Tokyo",
    "82": "Asia/Seoul",
    "84": "Asia/Ho_Chi_Minh",
    "86": "Asia/Shanghai",
    "852": "Asia/Hong_Kong",
    "853": "Asia/Macau",
    "886": "Asia/Taipei",
    "91": "Asia/Kolkata",
    "92": "Asia/Karachi",
    "93": "Asia/Kabul",
    "94": "Asia/Colombo",
    "95": "Asia/Yangon",
    "98": "Asia/Tehran",
    # Europe
    "30": "Europe/Athens",
    "31": "Europe/Amsterdam",
    "32": "Europe/Brussels",
    "33": "Europe/Paris",
    "34": "Europe/Madrid",
    "39": "Europe/Rome",
    "40": "Europe/Bucharest",
    "41": "Europe/Zurich",
    "43": "Europe/Vienna",
    "44": "Europe/London",
    "45": "Europe/Copenhagen",
    "46": "Europe/Stockholm",
    "47": "Europe/Oslo",
    "48": "Europe/Warsaw",
    "49": "Europe/Berlin",
    # Middle East / Africa
    "20": "Africa/Cairo",
    "27": "Africa/Johannesburg",
    "90": "Europe/Istanbul",
    "961": "Asia/Beirut",
    "962": "Asia/Amman",
    "963": "Asia/Damascus",
    "964": "Asia/Baghdad",
    "965": "Asia/Kuwait",
    "966": "Asia/Riyadh",
    "967": "Asia/Aden",
    "968": "Asia/Muscat",
    "971": "Asia/Dubai",
    "972": "Asia/Jerusalem",
    "973": "Asia/Bahrain",
    "974": "Asia/Qatar",
    # Latin America
    "51": "America/Lima",
    "52": "America/Mexico_City",
    "53": "America/Havana",
    "54": "America/Argentina/Buenos_Aires",
    "55": "America/Sao_Paulo",
    "56": "America/Santiago",
    "57": "America/Bogota",
    "58": "America/Caracas",
}

_CODES_LONGEST_FIRST = sorted(COUNTRY_TIMEZONES, key=len, reverse=True)


def timezone_from_phone(phone_number: str) -> str:
    """
    Guess a timezone from the country calling code of a phone number.

    Longer codes are tried first (``852`` before ``85``). Returns ``UTC`` when
    nothing matches.
    """
    digits = re.sub(r"\D", "", phone_number or "")

    for code in _CODES_LONGEST_FIRST:
        if digits.startswith(code):
            logger.debug("Detected country code %s for %s", code, phone_number)
            return COUNTRY_TIMEZONES[code]

    logger.debug("No country code detected for %s, defaulting to UTC", phone_number)
    return "UTC"
