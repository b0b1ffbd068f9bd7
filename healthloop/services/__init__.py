"""
Service Layer Package

Feature collections built on the generic SyncedCollection, plus the
per-session container that wires them to their collaborators.

Feature Collections:
- ActionsCollection: health action items (toggle, completion stats)
- PlansCollection: micro-habit plans (daily toggle with streak counter)
- PhotosCollection: visual check photos (inline upload, per-category views)
"""

from healthloop.services.action_service import ActionsCollection
from healthloop.services.plan_service import PlansCollection
from healthloop.services.photo_service import PhotosCollection
from healthloop.services.container import ServiceContainer, create_persistence

__all__ = [
    "ActionsCollection",
    "PlansCollection",
    "PhotosCollection",
    "ServiceContainer",
    "create_persistence",
]
