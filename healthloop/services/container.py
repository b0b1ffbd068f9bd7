"""
Service Container - Dependency Injection Container

Owns one user session's engine components. Components are lazy-loaded on
first access; collaborators (key-value persistence, document store, clock)
are injected.
"""

from dataclasses import dataclass, field
from typing import Optional
import logging

from healthloop import config
from healthloop.config import EngineSettings
from healthloop.gamification.progression_store import ProgressionStore
from healthloop.persistence.key_value import InMemoryKeyValueStore, KeyValueStore, RedisKeyValueStore
from healthloop.services.action_service import ActionsCollection
from healthloop.services.photo_service import PhotosCollection
from healthloop.services.plan_service import PlansCollection
from healthloop.sync.document_store import DocumentStore
from healthloop.utils.datetime_helpers import Clock

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """
    Per-session container.

    Collections are bound to ``user_id`` as their namespace; call start()
    to load progression and open the live subscriptions, shutdown() to
    release them.
    """

    # Collaborators (injected)
    user_id: str
    document_store: DocumentStore
    persistence: KeyValueStore
    clock: Optional[Clock] = None
    settings: Optional[EngineSettings] = None

    # Components (lazy-loaded via properties)
    _progression: Optional[ProgressionStore] = field(default=None, init=False, repr=False)
    _actions: Optional[ActionsCollection] = field(default=None, init=False, repr=False)
    _plans: Optional[PlansCollection] = field(default=None, init=False, repr=False)
    _photos: Optional[PhotosCollection] = field(default=None, init=False, repr=False)

    @property
    def progression(self) -> ProgressionStore:
        """Get ProgressionStore instance (lazy-loaded, not yet loaded)"""
        if self._progression is None:
            self._progression = ProgressionStore(
                self.persistence,
                clock=self.clock,
                settings=self.settings,
                user_id=self.user_id,
            )
            logger.debug("ProgressionStore instantiated")
        return self._progression

    @property
    def actions(self) -> ActionsCollection:
        if self._actions is None:
            self._actions = ActionsCollection(self.document_store, namespace=self.user_id)
            logger.debug("ActionsCollection instantiated")
        return self._actions

    @property
    def plans(self) -> PlansCollection:
        if self._plans is None:
            self._plans = PlansCollection(self.document_store, namespace=self.user_id)
            logger.debug("PlansCollection instantiated")
        return self._plans

    @property
    def photos(self) -> PhotosCollection:
        if self._photos is None:
            self._photos = PhotosCollection(self.document_store, namespace=self.user_id)
            logger.debug("PhotosCollection instantiated")
        return self._photos

    async def start(self) -> None:
        """Load progression and subscribe every feature collection"""
        await self.progression.load()
        for collection in (self.actions, self.plans, self.photos):
            await collection.subscribe()
        logger.info(f"Session started for user {self.user_id}")

    async def shutdown(self) -> None:
        """Release subscriptions and persist any open focus session"""
        if self._progression is not None and self._progression.session_active:
            await self._progression.end_session()
        for collection in (self._actions, self._plans, self._photos):
            if collection is not None:
                await collection.close()
        logger.info(f"Session closed for user {self.user_id}")


def create_persistence(user_id: str) -> KeyValueStore:
    """
    Key-value backend from configuration

    Uses Redis when REDIS_URL is set, otherwise process memory.
    """
    if config.REDIS_URL:
        return RedisKeyValueStore(config.REDIS_URL, prefix=f"{config.REDIS_KEY_PREFIX}{user_id}:")
    logger.warning("REDIS_URL not set - progression is kept in memory only")
    return InMemoryKeyValueStore()
