"""Meta intents answered without calling the language model.

Classifiers are evaluated in a fixed order and the first match wins. Matching
is a case-insensitive regex search, so partial phrases count: "please help me
write code" is a help request. That false positive is kept on purpose so the
routing stays reproducible.
"""
import re
import logging
from datetime import datetime
from enum import Enum
from typing import List, Optional, Pattern, Tuple

from docchat.services.user_directory import UserProfile, display_name

logger = logging.getLogger(__name__)


class Intent(str, Enum):
    IDENTITY = "identity"
    PROFILE = "profile"
    HELP = "help"
    SESSION_INFO = "session_info"


def _compile(*patterns: str) -> List[Pattern]:
    return [re.compile(pattern, re.IGNORECASE) for pattern in patterns]


CLASSIFIERS: List[Tuple[Intent, List[Pattern]]] = [
    (Intent.IDENTITY, _compile(
        r"what\s+is\s+my\s+name\??",
        r"what's\s+my\s+name\??",
        r"who\s+am\s+i\??",
        r"tell\s+me\s+my\s+name",
        r"my\s+name\s+is\s+what\??",
        r"what\s+do\s+you\s+call\s+me\??",
    )),
    (Intent.PROFILE, _compile(
        r"show\s+my\s+profile",
        r"my\s+profile",
        r"tell\s+me\s+about\s+myself",
        r"about\s+myself",
        r"what\s+do\s+you\s+know\s+about\s+me",
    )),
    (Intent.HELP, _compile(
        r"help",
        r"what\s+can\s+you\s+do",
        r"commands",
        r"features",
        r"show\s+help",
    )),
    (Intent.SESSION_INFO, _compile(
        r"chat\s+info",
        r"session\s+info",
        r"current\s+chat",
        r"what\s+chat\s+is\s+this",
    )),
]

HELP_MESSAGE = """🤖 **AI Chat System - Help & Commands**

**Basic Commands:**
• Ask "What is my name?" - I'll tell you your name
• Ask "Show my profile" - I'll show your profile information
• Type "help" - Show this help message
• Ask "Chat info" - Show current chat session info

**Chat Features:**
• Ask me anything - I'm here to help with questions
• Upload files (PDF/CSV) - I can analyze and answer questions about them
• I remember our conversation context
• I know your name and can personalize responses

**File Support:**
• PDF files - I can read and analyze text content
• CSV files - I can process data and answer questions
• Maximum file size: 10MB
• Supported formats: .pdf, .csv

**Examples:**
• "What is my name?"
• "Show my profile"
• "Chat info"
• "Help me analyze this PDF"
• "What can you do?"
• "Tell me about myself"

Feel free to ask me anything or upload files for analysis! 🚀"""


def _format_time(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "unknown"


class IntentRouter:
    def __init__(self, classifiers: List[Tuple[Intent, List[Pattern]]] = None):
        self.classifiers = classifiers or CLASSIFIERS

    def classify(self, text: str) -> Optional[Intent]:
        for intent, patterns in self.classifiers:
            if any(pattern.search(text or "") for pattern in patterns):
                logger.debug(f"Message matched meta intent {intent.value}")
                return intent
        return None

    def respond(self, intent: Intent, profile: Optional[UserProfile], session, file_count: int = 0) -> str:
        if intent == Intent.IDENTITY:
            return f"Your name is {display_name(profile)}! 😊"
        if intent == Intent.PROFILE:
            return self._profile_summary(profile)
        if intent == Intent.HELP:
            return HELP_MESSAGE
        if intent == Intent.SESSION_INFO:
            return self._session_info(session, file_count)
        raise ValueError(f"Unknown intent: {intent}")

    def _profile_summary(self, profile: Optional[UserProfile]) -> str:
        lines = ["User Profile:"]
        if profile is not None:
            if profile.first_name and profile.last_name:
                lines.append(f"👤 **Name:** {profile.first_name} {profile.last_name}")
            elif profile.first_name:
                lines.append(f"👤 **Name:** {profile.first_name}")
            if profile.username:
                lines.append(f"🏷️ **Username:** {profile.username}")
            if profile.email:
                lines.append(f"📧 **Email:** {profile.email}")
            if profile.created_at:
                lines.append(f"📅 **Member since:** {profile.created_at.strftime('%Y-%m-%d')}")
            if profile.last_login:
                lines.append(f"🕒 **Last login:** {_format_time(profile.last_login)}")
        return "\n".join(lines) + "\n"

    def _session_info(self, session, file_count: int) -> str:
        return (
            "💬 **Current Chat Session**\n\n"
            "**Chat Details:**\n"
            f"• **Title:** {session.title}\n"
            f"• **Created:** {_format_time(session.created_at)}\n"
            f"• **Last Activity:** {_format_time(session.last_activity)}\n"
            f"• **Total Messages:** {session.total_messages}\n"
            f"• **Files Uploaded:** {file_count}"
        )
