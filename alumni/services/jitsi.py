"""
Jitsi Meet rooms for virtual events

Rooms need no API call: a unique room name on the configured Jitsi domain
is a meeting.
"""
import re
import secrets
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from alumni.core.config import settings

DEFAULT_CONFIG = {
    "startWithAudioMuted": True,
    "startWithVideoMuted": False,
    "enableWelcomePage": False,
    "prejoinPageEnabled": True,
    "disableDeepLinking": True,
    "enableLobby": False,
}

# host fragment -> platform
KNOWN_PLATFORMS = {
    "zoom.us": "zoom",
    "teams.microsoft.com": "teams",
    "meet.google.com": "google_meet",
    "webex.com": "webex",
    "meet.jit.si": "jitsi",
}


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")[:40] or "event"


class JitsiMeetService:

    def __init__(self, domain: Optional[str] = None):
        self.domain = domain or settings.jitsi_domain

    def create_meeting(self, event_id: str, title: str) -> Dict[str, Any]:
        room_id = f"alumni-{_slug(title)}-{event_id[:8]}-{secrets.token_hex(3)}"
        return {
            "room_id": room_id,
            "meeting_url": f"https://{self.domain}/{room_id}",
            "config": dict(DEFAULT_CONFIG),
        }

    def meeting_credentials(self, event, user) -> Dict[str, Any]:
        credentials = {
            "platform": event.meeting_platform,
            "meeting_url": event.meeting_url,
            "password": event.meeting_password,
            "instructions": event.meeting_instructions,
            "embed_allowed": event.meeting_embed_allowed,
        }
        if event.meeting_platform == "jitsi":
            credentials.update(
                room_id=event.jitsi_room_id,
                domain=self.domain,
                config=event.jitsi_config or dict(DEFAULT_CONFIG),
                display_name=user.name,
                email=user.email,
            )
        return credentials

    def validate_meeting_url(self, url: str) -> Dict[str, Any]:
        parsed = urlparse(url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return {"valid": False, "platform": None, "message": "Invalid meeting URL"}
        host = parsed.netloc.lower()
        platform = "jitsi" if host == self.domain else None
        for fragment, name in KNOWN_PLATFORMS.items():
            if fragment in host:
                platform = name
                break
        return {"valid": True, "platform": platform or "other", "message": "OK"}


jitsi_service = JitsiMeetService()
