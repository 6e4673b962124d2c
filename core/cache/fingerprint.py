#!/usr/bin/env python3
"""
Profile fingerprints and cache keys.

A fingerprint covers only the profile fields that can change a score, so
edits to names or contact details never invalidate cached results.
"""

import hashlib
import json
from dataclasses import dataclass
from typing import Tuple

from core.scorer.models import Profile, ScoringMethod, ScoringMode

FINGERPRINT_LENGTH = 12


class ProfileFingerprinter:
    """Stable short hash of a profile's scoring-relevant fields."""

    @staticmethod
    def canonical_json(profile: Profile) -> str:
        return json.dumps(profile.scoring_fields(), sort_keys=True, separators=(',', ':'), default=str)

    @staticmethod
    def calculate(profile: Profile) -> str:
        raw_string = ProfileFingerprinter.canonical_json(profile)
        return hashlib.sha256(raw_string.encode('utf-8')).hexdigest()[:FINGERPRINT_LENGTH]


def profile_tag(profile_id: str) -> str:
    return f"profile:{profile_id}"


def opportunity_tag(opportunity_id: str) -> str:
    return f"opportunity:{opportunity_id}"


@dataclass(frozen=True)
class CacheKey:
    """``profileId:fingerprint:opportunityId:method:mode``"""
    profile_id: str
    fingerprint: str
    opportunity_id: str
    method: ScoringMethod
    mode: ScoringMode

    @classmethod
    def build(
        cls,
        profile: Profile,
        opportunity_id: str,
        method: ScoringMethod,
        mode: ScoringMode
    ) -> "CacheKey":
        return cls(
            profile_id=profile.id,
            fingerprint=ProfileFingerprinter.calculate(profile),
            opportunity_id=opportunity_id,
            method=method,
            mode=mode,
        )

    @property
    def value(self) -> str:
        return f"{self.profile_id}:{self.fingerprint}:{self.opportunity_id}:{self.method.value}:{self.mode.value}"

    @property
    def tags(self) -> Tuple[str, str]:
        return (profile_tag(self.profile_id), opportunity_tag(self.opportunity_id))

    def __str__(self) -> str:
        return self.value
