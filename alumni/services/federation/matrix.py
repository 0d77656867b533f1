"""
Matrix event mapping
"""
import hashlib
import re
from datetime import timezone
from typing import Any, Dict, Optional

from alumni.core.config import settings
from alumni.models.base import utcnow
from alumni.services.federation.activitypub import federation_username


def _opaque_id(*parts: str) -> str:
    return hashlib.sha256(":".join(parts).encode("utf-8")).hexdigest()[:18]


class MatrixEventMapper:

    def __init__(self, server_name: Optional[str] = None):
        self.server_name = server_name or settings.federation_server_name

    def get_user_matrix_id(self, user) -> str:
        return f"@{federation_username(user)}:{self.server_name}"

    def room_id(self, kind: str, local_id: str) -> str:
        return f"!{_opaque_id(kind, local_id)}:{self.server_name}"

    def room_alias(self, name: str) -> str:
        slug = re.sub(r"[^a-z0-9_-]+", "-", name.lower()).strip("-")
        return f"#{slug}:{self.server_name}"

    def post_to_event(self, post, author) -> Dict[str, Any]:
        sent_at = post.created_at or utcnow()
        if post.group_ids:
            room = self.room_id("group", post.group_ids[0])
        elif post.circle_ids:
            room = self.room_id("circle", post.circle_ids[0])
        else:
            room = self.room_id("timeline", author.id)

        content: Dict[str, Any] = {
            "msgtype": "m.text",
            "body": post.content,
            "alumni.post_id": post.id,
            "alumni.post_type": post.post_type,
            "alumni.visibility": post.visibility,
        }
        if post.circle_ids:
            content["alumni.circles"] = list(post.circle_ids)
        if post.group_ids:
            content["alumni.groups"] = list(post.group_ids)
        if post.media_urls:
            content["alumni.media"] = list(post.media_urls)

        return {
            "type": "m.room.message",
            "event_id": f"${_opaque_id('post', post.id)}:{self.server_name}",
            "room_id": room,
            "sender": self.get_user_matrix_id(author),
            "origin_server_ts": int(sent_at.replace(tzinfo=timezone.utc).timestamp() * 1000),
            "content": content,
        }

    def user_to_profile(self, user) -> Dict[str, Any]:
        return {
            "user_id": self.get_user_matrix_id(user),
            "displayname": user.name,
            "avatar_url": user.avatar_url,
            "alumni.user_id": user.id,
            "alumni.graduation_year": user.graduation_year,
            "alumni.location": user.location,
        }

    def group_to_room(self, group) -> Dict[str, Any]:
        public = group.privacy == "public"
        return {
            "room_id": self.room_id("group", group.id),
            "room_alias": self.room_alias(group.name),
            "name": group.name,
            "topic": group.description,
            "join_rule": "public" if public else "invite",
            "history_visibility": "shared" if public else "joined",
            "alumni.group_id": group.id,
            "alumni.privacy": group.privacy,
            "alumni.member_count": group.member_count,
        }
