#!/usr/bin/env python3
"""
Scoring Data Source - Lookup of profiles and opportunities.

Production deployments plug in a source backed by their own store. The
file-backed source reads a YAML or JSON document shaped like:

    profiles:
      - id: prof-1
        organization_id: org-1
        default: true
        ...
    opportunities:
      - id: opp-1
        ...
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional

import yaml

from core.scorer.models import Opportunity, Profile

logger = logging.getLogger(__name__)


class ScoringDataSource(ABC):

    @abstractmethod
    async def get_profile(self, profile_id: str) -> Optional[Profile]:
        pass

    @abstractmethod
    async def get_default_profile(self, organization_id: str) -> Optional[Profile]:
        pass

    @abstractmethod
    async def get_opportunity(self, opportunity_id: str) -> Optional[Opportunity]:
        pass


class InMemoryDataSource(ScoringDataSource):
    """Data source over plain dicts or already-built records."""

    def __init__(
        self,
        profiles: Iterable[Any] = (),
        opportunities: Iterable[Any] = (),
        default_profiles: Optional[Dict[str, str]] = None
    ):
        self._profiles: Dict[str, Profile] = {}
        self._defaults: Dict[str, str] = dict(default_profiles or {})
        self._opportunities: Dict[str, Opportunity] = {}
        for raw in profiles:
            self.add_profile(raw)
        for raw in opportunities:
            self.add_opportunity(raw)

    def add_profile(self, raw: Any) -> Profile:
        profile = raw if isinstance(raw, Profile) else Profile.from_dict(raw)
        self._profiles[profile.id] = profile
        is_default = isinstance(raw, dict) and raw.get('default')
        if profile.organization_id and (is_default or profile.organization_id not in self._defaults):
            self._defaults[profile.organization_id] = profile.id
        return profile

    def add_opportunity(self, raw: Any) -> Opportunity:
        opportunity = raw if isinstance(raw, Opportunity) else Opportunity.from_dict(raw)
        self._opportunities[opportunity.id] = opportunity
        return opportunity

    async def get_profile(self, profile_id: str) -> Optional[Profile]:
        return self._profiles.get(profile_id)

    async def get_default_profile(self, organization_id: str) -> Optional[Profile]:
        profile_id = self._defaults.get(organization_id)
        return self._profiles.get(profile_id) if profile_id else None

    async def get_opportunity(self, opportunity_id: str) -> Optional[Opportunity]:
        return self._opportunities.get(opportunity_id)


class FileDataSource(InMemoryDataSource):
    """Loads profiles and opportunities from a YAML or JSON file."""

    def __init__(self, path: str):
        self.path = path
        data = self._load(path)
        super().__init__(
            profiles=data.get('profiles') or [],
            opportunities=data.get('opportunities') or [],
            default_profiles=data.get('default_profiles'),
        )
        logger.info(
            f"Loaded {len(self._profiles)} profiles and {len(self._opportunities)} opportunities from {path}"
        )

    @staticmethod
    def _load(path: str) -> Dict[str, Any]:
        if not os.path.exists(path):
            logger.warning(f"Scoring data file not found: {path}")
            return {}
        with open(path, "r") as f:
            if path.endswith(".json"):
                return json.load(f) or {}
            return yaml.safe_load(f) or {}
