"""
ActivityPub object mapping

Builds ActivityStreams documents for posts, users, groups and circles.
Nothing is sent anywhere; the bridge stores what this produces.
"""
import os
import re
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from alumni.core.config import settings
from alumni.models.base import utcnow

PUBLIC = "https://www.w3.org/ns/activitystreams#Public"
ACTIVITYSTREAMS = "https://www.w3.org/ns/activitystreams"
CONTEXT = [
    ACTIVITYSTREAMS,
    "https://w3id.org/security/v1",
    {"alumni": "https://alumni-platform.org/ns#"},
]

HASHTAG_RE = re.compile(r"#([a-zA-Z0-9_]+)")
MENTION_RE = re.compile(r"@([a-zA-Z0-9_]+)")

MEDIA_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "mp4": "video/mp4",
    "webm": "video/webm",
    "pdf": "application/pdf",
}

PUBLIC_KEY_PLACEHOLDER = "-----BEGIN PUBLIC KEY-----\n[PUBLIC_KEY_PLACEHOLDER]\n-----END PUBLIC KEY-----"


def federation_username(user) -> str:
    prefix = (user.email or "").split("@")[0]
    username = re.sub(r"[^a-zA-Z0-9._-]", "", prefix)
    if not username:
        username = f"user_{user.id}"
    return username.lower()


def guess_media_type(url: str) -> str:
    extension = os.path.splitext(urlparse(url).path)[1].lstrip(".").lower()
    return MEDIA_TYPES.get(extension, "application/octet-stream")


def _iso(value: Optional[datetime]) -> str:
    return (value or utcnow()).isoformat() + "Z"


class ActivityPubMapper:

    def __init__(self, base_url: Optional[str] = None):
        self.base_url = (base_url or settings.federation_base_url).rstrip("/")

    # ==================== URLs ====================

    def user_url(self, user) -> str:
        return f"{self.base_url}/federation/users/{federation_username(user)}"

    def post_url(self, post) -> str:
        return f"{self.base_url}/federation/posts/{post.id}"

    def group_url(self, group_id: str) -> str:
        return f"{self.base_url}/federation/groups/{group_id}"

    def circle_url(self, circle_id: str) -> str:
        return f"{self.base_url}/federation/circles/{circle_id}"

    # ==================== Objects ====================

    def post_to_object(self, post, author) -> Dict[str, Any]:
        obj = {
            "@context": CONTEXT,
            "type": "Document" if post.media_urls else "Note",
            "id": self.post_url(post),
            "attributedTo": self.user_url(author),
            "content": post.content,
            "published": _iso(post.created_at),
            "to": self.post_audience(post),
            "cc": self.post_cc(post, author),
            "alumni:postId": post.id,
            "alumni:postType": post.post_type,
            "alumni:visibility": post.visibility,
        }
        if post.circle_ids:
            obj["alumni:circles"] = [self.circle_url(cid) for cid in post.circle_ids]
        if post.group_ids:
            obj["alumni:groups"] = [self.group_url(gid) for gid in post.group_ids]
        if post.media_urls:
            obj["attachment"] = [
                {
                    "type": "Document",
                    "mediaType": guess_media_type(url),
                    "url": url,
                    "name": os.path.basename(urlparse(url).path),
                }
                for url in post.media_urls
            ]
        tags = self.extract_tags(post.content or "")
        if tags:
            obj["tag"] = tags
        return obj

    def post_audience(self, post) -> List[str]:
        audience = [PUBLIC] if post.visibility == "public" else []
        audience.extend(self.circle_url(cid) for cid in post.circle_ids or [])
        audience.extend(self.group_url(gid) for gid in post.group_ids or [])
        return audience

    def post_cc(self, post, author) -> List[str]:
        if post.visibility == "public":
            return [f"{self.user_url(author)}/followers"]
        return []

    def extract_tags(self, content: str) -> List[dict]:
        tags = [
            {"type": "Hashtag", "href": f"{self.base_url}/tags/{tag}", "name": f"#{tag}"}
            for tag in dict.fromkeys(HASHTAG_RE.findall(content))
        ]
        tags.extend(
            {"type": "Mention", "href": f"{self.base_url}/federation/users/{name}", "name": f"@{name}"}
            for name in dict.fromkeys(MENTION_RE.findall(content))
        )
        return tags

    def user_to_actor(self, user) -> Dict[str, Any]:
        url = self.user_url(user)
        return {
            "@context": CONTEXT,
            "type": "Person",
            "id": url,
            "preferredUsername": federation_username(user),
            "name": user.name,
            "summary": user.bio,
            "url": f"{self.base_url}/alumni/{federation_username(user)}",
            "icon": {"type": "Image", "mediaType": "image/jpeg", "url": user.avatar_url} if user.avatar_url else None,
            "inbox": f"{url}/inbox",
            "outbox": f"{url}/outbox",
            "followers": f"{url}/followers",
            "following": f"{url}/following",
            "publicKey": {
                "id": f"{url}#main-key",
                "owner": url,
                "publicKeyPem": PUBLIC_KEY_PLACEHOLDER,
            },
            "alumni:userId": user.id,
            "alumni:location": user.location,
            "alumni:joinedAt": _iso(user.created_at),
        }

    def group_to_object(self, group) -> Dict[str, Any]:
        url = self.group_url(group.id)
        return {
            "@context": CONTEXT,
            "type": "Group",
            "id": url,
            "name": group.name,
            "summary": group.description,
            "url": f"{self.base_url}/groups/{group.id}",
            "inbox": f"{url}/inbox",
            "outbox": f"{url}/outbox",
            "members": f"{url}/members",
            "alumni:groupId": group.id,
            "alumni:privacy": group.privacy,
            "alumni:memberCount": group.member_count,
        }

    def circle_to_collection(self, circle) -> Dict[str, Any]:
        url = self.circle_url(circle.id)
        return {
            "@context": CONTEXT,
            "type": "Collection",
            "id": url,
            "name": circle.name,
            "summary": f"Alumni circle: {circle.name}",
            "totalItems": circle.member_count,
            "items": f"{url}/members",
            "alumni:circleId": circle.id,
            "alumni:circleType": circle.type,
            "alumni:criteria": circle.criteria,
            "alumni:autoGenerated": circle.auto_generated,
        }

    # ==================== Activities ====================

    def create_post_activity(self, post, author) -> Dict[str, Any]:
        return {
            "@context": ACTIVITYSTREAMS,
            "type": "Create",
            "id": f"{self.post_url(post)}/activities/create",
            "actor": self.user_url(author),
            "object": self.post_to_object(post, author),
            "published": _iso(post.created_at),
            "to": self.post_audience(post),
            "cc": self.post_cc(post, author),
        }

    def like_activity(self, user, post) -> Dict[str, Any]:
        return {
            "@context": ACTIVITYSTREAMS,
            "type": "Like",
            "id": f"{self.user_url(user)}/activities/like/{post.id}",
            "actor": self.user_url(user),
            "object": self.post_url(post),
            "published": _iso(None),
        }

    def follow_activity(self, follower, following) -> Dict[str, Any]:
        return {
            "@context": ACTIVITYSTREAMS,
            "type": "Follow",
            "id": f"{self.user_url(follower)}/activities/follow/{federation_username(following)}",
            "actor": self.user_url(follower),
            "object": self.user_url(following),
            "published": _iso(None),
        }

    def join_activity(self, user, group) -> Dict[str, Any]:
        return {
            "@context": ACTIVITYSTREAMS,
            "type": "Join",
            "id": f"{self.user_url(user)}/activities/join/{group.id}",
            "actor": self.user_url(user),
            "object": self.group_url(group.id),
            "published": _iso(None),
        }
