from typing import Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

WELCOME_TEXT = "🙄 Welcome! Send me a document or video, and I will generate its hash for you."
USER_FOOTER = "Download your file using this link:"
CHANNEL_FOOTER = "Click the button below to download:"


def download_link(base_url: str, file_hash: str) -> str:
    return f"{base_url}/download/{file_hash}"


def size_in_mb(size: int) -> str:
    return f"{size / (1024 * 1024):.2f} MB"


def file_caption(file_name: str, size: int, footer: str = USER_FOOTER) -> str:
    return f"📁 File: {file_name}\n📦 Size: {size_in_mb(size)}\n\n{footer}"


def download_keyboard(url: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[InlineKeyboardButton("🔗 Download File 🔗", url=url)]])


def welcome_keyboard(join_url: Optional[str]) -> Optional[InlineKeyboardMarkup]:
    if not join_url:
        return None
    return InlineKeyboardMarkup([[InlineKeyboardButton("✨ Join Channel ✨", url=join_url)]])
