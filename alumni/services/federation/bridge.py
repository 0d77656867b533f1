"""
Federation bridge

Translates local posts, users and groups for each enabled protocol and
records the resulting identifiers as FederationMapping rows. Mapping
failures are reported in the result instead of raised, so one protocol
failing does not stop the others.
"""
import json
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.config import settings
from alumni.crud import user_crud
from alumni.models.base import utcnow
from alumni.models.federation import FederationMapping
from alumni.services.federation.activitypub import ActivityPubMapper
from alumni.services.federation.matrix import MatrixEventMapper

PROTOCOLS = ("matrix", "activitypub")


class FederationBridge:

    def __init__(
        self,
        enabled: Optional[bool] = None,
        protocols: Optional[List[str]] = None,
        server_name: Optional[str] = None,
        base_url: Optional[str] = None,
    ):
        self._enabled = enabled
        self._protocols = protocols
        self._server_name = server_name
        self._base_url = base_url

    @property
    def enabled(self) -> bool:
        return settings.federation_enabled if self._enabled is None else self._enabled

    @property
    def protocols(self) -> List[str]:
        protocols = settings.federation_protocols if self._protocols is None else self._protocols
        return [p for p in protocols if p in PROTOCOLS]

    @property
    def server_name(self) -> str:
        return self._server_name or settings.federation_server_name

    @property
    def matrix(self) -> MatrixEventMapper:
        return MatrixEventMapper(self.server_name)

    @property
    def activitypub(self) -> ActivityPubMapper:
        return ActivityPubMapper(self._base_url)

    def is_protocol_enabled(self, protocol: str) -> bool:
        return self.enabled and protocol in self.protocols

    # ==================== Mappings ====================

    async def get_mapping(
        self, db: AsyncSession, local_type: str, local_id: str, protocol: str
    ) -> Optional[FederationMapping]:
        result = await db.execute(
            select(FederationMapping).where(
                FederationMapping.local_type == local_type,
                FederationMapping.local_id == local_id,
                FederationMapping.protocol == protocol,
            )
        )
        return result.scalar_one_or_none()

    async def save_mapping(
        self,
        db: AsyncSession,
        local_type: str,
        local_id: str,
        protocol: str,
        federation_id: str,
        federation_data: Dict[str, Any],
    ) -> FederationMapping:
        mapping = await self.get_mapping(db, local_type, local_id, protocol)
        if mapping is None:
            mapping = FederationMapping(local_type=local_type, local_id=local_id, protocol=protocol, federation_id=federation_id)
            db.add(mapping)
        mapping.federation_id = federation_id
        mapping.federation_data = federation_data
        mapping.server_name = self.server_name
        mapping.federated_at = utcnow()
        await db.flush()
        return mapping

    # ==================== Outgoing ====================

    async def _federate(
        self, db: AsyncSession, local_type: str, local_id: str, translations: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        translations maps protocol -> (id key, callable returning (federation_id, document))
        """
        if not self.enabled:
            return {"status": "disabled"}

        results: Dict[str, Any] = {}
        for protocol in self.protocols:
            id_key, translate = translations[protocol]
            try:
                async with db.begin_nested():
                    federation_id, document = translate()
                    await self.save_mapping(db, local_type, local_id, protocol, federation_id, document)
                logger.info(
                    "Federated {} {} via {} ({} bytes)",
                    local_type, local_id, protocol, len(json.dumps(document, default=str)),
                )
                results[protocol] = {"status": "success", id_key: federation_id}
            except Exception as exc:
                logger.error("{} federation of {} {} failed: {}", protocol, local_type, local_id, exc)
                results[protocol] = {"status": "error", "message": str(exc)}

        succeeded = {p: r for p, r in results.items() if r["status"] == "success"}
        if results and not succeeded:
            return {
                "status": "error",
                "message": "; ".join(f"{p}: {r['message']}" for p, r in results.items()),
                "results": results,
            }
        response: Dict[str, Any] = {"status": "success", "results": results}
        for result in succeeded.values():
            response.update({k: v for k, v in result.items() if k != "status"})
        return response

    async def federate_post(self, db: AsyncSession, post) -> Dict[str, Any]:
        author = await user_crud.get(db, post.user_id)
        if author is None:
            return {"status": "error", "message": f"Author of post {post.id} not found"}

        def to_matrix():
            event = self.matrix.post_to_event(post, author)
            return event["event_id"], event

        def to_activitypub():
            activity = self.activitypub.create_post_activity(post, author)
            return activity["id"], activity

        return await self._federate(db, "post", post.id, {
            "matrix": ("event_id", to_matrix),
            "activitypub": ("activity_id", to_activitypub),
        })

    async def federate_user(self, db: AsyncSession, user) -> Dict[str, Any]:
        def to_matrix():
            profile = self.matrix.user_to_profile(user)
            return profile["user_id"], profile

        def to_activitypub():
            actor = self.activitypub.user_to_actor(user)
            return actor["id"], actor

        return await self._federate(db, "user", user.id, {
            "matrix": ("user_id", to_matrix),
            "activitypub": ("actor_id", to_activitypub),
        })

    async def federate_group(self, db: AsyncSession, group) -> Dict[str, Any]:
        def to_matrix():
            room = self.matrix.group_to_room(group)
            return room["room_id"], room

        def to_activitypub():
            obj = self.activitypub.group_to_object(group)
            return obj["id"], obj

        return await self._federate(db, "group", group.id, {
            "matrix": ("room_id", to_matrix),
            "activitypub": ("group_id", to_activitypub),
        })

    def federated_identity(self, user, protocol: str) -> Optional[str]:
        if protocol == "matrix":
            return self.matrix.get_user_matrix_id(user)
        if protocol == "activitypub":
            return self.activitypub.user_url(user)
        return None

    # ==================== Incoming ====================

    def handle_incoming_activity(self, protocol: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.is_protocol_enabled(protocol):
            return {"status": "protocol_disabled", "protocol": protocol}
        logger.info(
            "Incoming {} payload ({} bytes, type {})",
            protocol, len(json.dumps(payload, default=str)), payload.get("type"),
        )
        kind = "matrix_event" if protocol == "matrix" else "activitypub_activity"
        return {"status": "processed", "type": kind}

    # ==================== Status ====================

    async def get_status(self, db: AsyncSession) -> Dict[str, Any]:
        async def grouped(column) -> Dict[str, int]:
            result = await db.execute(select(column, func.count()).group_by(column))
            return dict(result.all())

        by_protocol = await grouped(FederationMapping.protocol)
        last = await db.execute(select(func.max(FederationMapping.federated_at)))
        return {
            "enabled": self.enabled,
            "protocols": self.protocols,
            "server_name": self.server_name,
            "mappings": {
                "total": sum(by_protocol.values()),
                "by_protocol": by_protocol,
                "by_type": await grouped(FederationMapping.local_type),
            },
            "last_activity": last.scalar_one_or_none(),
        }


federation_bridge = FederationBridge()
