"""
Tests for profile fingerprints and cache keys.
"""
import dataclasses

from core.cache.fingerprint import CacheKey, ProfileFingerprinter, opportunity_tag, profile_tag
from core.scorer.models import Profile, ScoringMethod, ScoringMode
from tests.mocks.scoring_mocks import SAMPLE_PROFILE


class TestProfileFingerprinter:

    def test_fingerprint_is_stable(self, profile):
        again = Profile.from_dict(SAMPLE_PROFILE)

        assert ProfileFingerprinter.calculate(profile) == ProfileFingerprinter.calculate(again)
        assert len(ProfileFingerprinter.calculate(profile)) == 12

    def test_key_order_does_not_matter(self):
        reordered = dict(reversed(list(SAMPLE_PROFILE.items())))

        assert (ProfileFingerprinter.calculate(Profile.from_dict(reordered))
                == ProfileFingerprinter.calculate(Profile.from_dict(SAMPLE_PROFILE)))

    def test_non_scoring_fields_are_ignored(self, profile):
        renamed = dataclasses.replace(profile, company_name="Renamed LLC", contact_email="x@y.z")

        assert ProfileFingerprinter.calculate(renamed) == ProfileFingerprinter.calculate(profile)

    def test_scoring_field_change_changes_fingerprint(self, profile):
        moved = dataclasses.replace(profile, state="MD")

        assert ProfileFingerprinter.calculate(moved) != ProfileFingerprinter.calculate(profile)


class TestCacheKey:

    def test_key_format_and_tags(self, profile):
        key = CacheKey.build(profile, "opp-1", ScoringMethod.HYBRID, ScoringMode.FAST)
        fingerprint = ProfileFingerprinter.calculate(profile)

        assert key.value == f"profile-acme:{fingerprint}:opp-1:hybrid:fast"
        assert str(key) == key.value
        assert key.tags == (profile_tag("profile-acme"), opportunity_tag("opp-1"))

    def test_method_and_mode_are_part_of_the_key(self, profile):
        fast = CacheKey.build(profile, "opp-1", ScoringMethod.GENERATIVE, ScoringMode.FAST)
        advanced = CacheKey.build(profile, "opp-1", ScoringMethod.GENERATIVE, ScoringMode.ADVANCED)

        assert fast.value != advanced.value
