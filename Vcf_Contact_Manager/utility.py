import jinja2
import os
import re
import unicodedata
from bleach import clean as sanitize
from markupsafe import Markup
from datetime import date, datetime
from typing import List, Optional, Union
from urllib.parse import urlparse
try:
    from enum import StrEnum
except ImportError:
    # < Python 3.11
    # This should be removed when the support for Python 3.10 ends.
    from enum import Enum
    class StrEnum(str, Enum):
        pass

CLEAR_LINE = "\x1b[K\n"
DEFAULT_VCF_NAME = "contacts.vcf"
DEFAULT_HTML_NAME = "contacts.html"
DEFAULT_STORE_NAME = "contacts.json"

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
GERMAN_ZIP_PATTERN = re.compile(r"^\d{5}$")


class SocialPlatform(StrEnum):
    LINKEDIN = "LinkedIn"
    FACEBOOK = "Facebook"
    INSTAGRAM = "Instagram"
    YOUTUBE = "YouTube"
    TWITTER = "Twitter/X"
    TIKTOK = "TikTok"
    GITHUB = "GitHub"
    XING = "Xing"
    WHATSAPP = "WhatsApp"
    TELEGRAM = "Telegram"
    DISCORD = "Discord"
    TWITCH = "Twitch"


SOCIAL_PROFILE_URLS = {
    SocialPlatform.LINKEDIN: "https://www.linkedin.com/in/",
    SocialPlatform.FACEBOOK: "https://www.facebook.com/",
    SocialPlatform.INSTAGRAM: "https://www.instagram.com/",
    SocialPlatform.YOUTUBE: "https://www.youtube.com/@",
    SocialPlatform.TWITTER: "https://twitter.com/",
    SocialPlatform.TIKTOK: "https://www.tiktok.com/@",
    SocialPlatform.GITHUB: "https://github.com/",
    SocialPlatform.XING: "https://www.xing.com/profile/",
    SocialPlatform.WHATSAPP: "https://wa.me/",
    SocialPlatform.TELEGRAM: "https://t.me/",
    SocialPlatform.DISCORD: "https://discord.com/users/",
    SocialPlatform.TWITCH: "https://www.twitch.tv/",
}

_PLATFORM_ALIASES = {
    "twitter": SocialPlatform.TWITTER,
    "x": SocialPlatform.TWITTER,
}


def normalize_platform(platform: Optional[str]) -> Optional[SocialPlatform]:
    """Maps a platform label to one of the known social platforms.

    Args:
        platform: The label as typed by the user or found in a vCard.

    Returns:
        The matching SocialPlatform, or None if the label is unknown.
    """
    if not platform:
        return None
    folded = platform.strip().casefold()
    for known in SocialPlatform:
        if known.value.casefold() == folded:
            return known
    return _PLATFORM_ALIASES.get(folded)


def is_valid_email(email: Optional[str]) -> bool:
    """Validates an e-mail address. Empty values are valid because the field is optional."""
    if not email:
        return True
    return EMAIL_PATTERN.match(email) is not None


def is_valid_german_zip(zip_code: Optional[str]) -> bool:
    """Validates a German ZIP code (5 digits). Empty values are valid."""
    if not zip_code:
        return True
    return GERMAN_ZIP_PATTERN.match(zip_code) is not None


def clean_phone_number(phone: Optional[str]) -> str:
    """Removes every non-digit character from a phone number."""
    if not phone:
        return ""
    return re.sub(r"\D", "", phone)


def format_german_phone_number(phone: Optional[str]) -> str:
    """Formats a German phone number for display.

    International prefixes (0049, 49) are rewritten to the national 0 and the
    area code is separated from the subscriber number. No validation is done.

    Args:
        phone: The phone number as entered.

    Returns:
        The formatted number, or the digits only if no German prefix is found.
    """
    cleaned = clean_phone_number(phone)
    if cleaned.startswith("0049"):
        cleaned = "0" + cleaned[4:]
    elif cleaned.startswith("49"):
        cleaned = "0" + cleaned[2:]
    elif not cleaned.startswith("0"):
        return cleaned
    return re.sub(r"(\d{4})(\d{6,})", r"\1 \2", cleaned, count=1)


def parse_birthday(birthday: Optional[str]) -> Optional[date]:
    if not birthday:
        return None
    try:
        return datetime.strptime(birthday, "%Y-%m-%d").date()
    except ValueError:
        return None


def calculate_age(birthday: Optional[str], today: Optional[date] = None) -> Optional[int]:
    """Calculates the age in years from a birthday in YYYY-MM-DD format.

    Args:
        birthday: The birthday string.
        today: Reference date, defaults to the current date.

    Returns:
        The age, or None for missing, invalid or future birthdays.
    """
    born = parse_birthday(birthday)
    if born is None:
        return None
    today = today or date.today()
    age = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        age -= 1
    return age if age >= 0 else None


def format_birthday(birthday: Optional[str], today: Optional[date] = None) -> str:
    """Formats a birthday as DD.MM.YYYY followed by the age in brackets.

    Args:
        birthday: The birthday in YYYY-MM-DD format.
        today: Reference date for the age, defaults to the current date.

    Returns:
        The formatted birthday, the input itself if it cannot be parsed,
        or an empty string for no birthday.
    """
    if not birthday:
        return ""
    born = parse_birthday(birthday)
    if born is None:
        return birthday
    formatted = born.strftime("%d.%m.%Y")
    age = calculate_age(birthday, today)
    return f"{formatted} ({age})" if age is not None else formatted


def natural_key(value: Optional[str]) -> List[Union[int, str]]:
    """Builds a sort key that compares digit runs numerically and ignores case and accents."""
    value = unicodedata.normalize("NFKD", value or "")
    value = "".join(c for c in value if not unicodedata.combining(c)).casefold()
    return [int(token) if token.isdigit() else token for token in re.split(r"(\d+)", value)]


def sanitize_filename(file_name: str) -> str:
    """Sanitizes a filename by removing invalid and unsafe characters.

    Args:
        file_name: The filename to sanitize.

    Returns:
        The sanitized filename.
    """
    return "".join(x for x in file_name if x.isalnum() or x in "-_. ")


def sanitize_except(html: str) -> Markup:
    """Sanitizes HTML, only allowing <br> tag.

    Args:
        html: The HTML string to sanitize.

    Returns:
        A Markup object containing the sanitized HTML.
    """
    return Markup(sanitize(html, tags=["br"]))


def safe_url(url: Optional[str]) -> Optional[str]:
    """Returns the url if it is an absolute http or https link, None otherwise."""
    if not url:
        return None
    url = url.strip()
    parsed = urlparse(url)
    if parsed.scheme.lower() in ("http", "https") and parsed.netloc:
        return url
    return None


def notes_to_html(notes: Optional[str]) -> Markup:
    """Renders multi-line notes as HTML with line breaks, everything else escaped."""
    if not notes:
        return Markup("")
    return sanitize_except(notes.replace("\r\n", "\n").replace("\r", "\n").replace("\n", "<br>"))


def setup_template(template: Optional[str]) -> jinja2.Template:
    """
    Sets up the Jinja2 template environment and loads the template.

    Args:
        template (Optional[str]): Path to custom template file. If None, uses default template.

    Returns:
        jinja2.Template: The configured Jinja2 template object.
    """
    if template is None:
        template_dir = os.path.dirname(__file__)
        template_file = DEFAULT_HTML_NAME
    else:
        template_dir = os.path.dirname(os.path.abspath(template))
        template_file = os.path.basename(template)
    template_loader = jinja2.FileSystemLoader(searchpath=template_dir)
    template_env = jinja2.Environment(loader=template_loader, autoescape=True)
    template_env.globals.update(
        format_birthday=format_birthday,
        format_phone=format_german_phone_number,
        safe_url=safe_url
    )
    template_env.filters['sanitize_except'] = sanitize_except
    template_env.filters['notes_to_html'] = notes_to_html
    return template_env.get_template(template_file)


def rendering(output_file_name, template, groups, total, shown, search_term, headline):
    with open(output_file_name, "w", encoding="utf-8") as f:
        f.write(
            template.render(
                groups=groups,
                total=total,
                shown=shown,
                search_term=search_term,
                headline=headline
            )
        )
