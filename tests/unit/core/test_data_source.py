"""
Tests for the profile/opportunity data sources.
"""
import json
from pathlib import Path

import pytest

from core.data_source import FileDataSource, InMemoryDataSource
from core.scorer.models import Profile
from tests.mocks.scoring_mocks import OPPORTUNITY_STRONG, SAMPLE_PROFILE

SAMPLE_DATA = Path(__file__).resolve().parents[3] / "data" / "scoring_data.yaml"


class TestInMemoryDataSource:

    @pytest.mark.asyncio
    async def test_lookup_by_id(self):
        source = InMemoryDataSource(profiles=[SAMPLE_PROFILE], opportunities=[OPPORTUNITY_STRONG])

        profile = await source.get_profile("profile-acme")
        opportunity = await source.get_opportunity("opp-1")

        assert profile.company_name == "Acme Federal Solutions"
        assert opportunity.naics_codes == ("541512",)
        assert await source.get_opportunity("opp-missing") is None

    @pytest.mark.asyncio
    async def test_first_profile_is_default_unless_flagged(self):
        second = dict(SAMPLE_PROFILE, id="profile-acme-2", default=True)
        third = dict(SAMPLE_PROFILE, id="profile-acme-3")
        source = InMemoryDataSource(profiles=[SAMPLE_PROFILE, second, third])

        default = await source.get_default_profile("org-acme")

        assert default.id == "profile-acme-2"
        assert await source.get_default_profile("org-other") is None

    @pytest.mark.asyncio
    async def test_explicit_default_mapping(self):
        source = InMemoryDataSource(
            profiles=[SAMPLE_PROFILE, Profile(id="profile-x", organization_id="org-x")],
            default_profiles={"org-acme": "profile-acme"},
        )

        assert (await source.get_default_profile("org-x")).id == "profile-x"
        assert (await source.get_default_profile("org-acme")).id == "profile-acme"


class TestFileDataSource:

    @pytest.mark.asyncio
    async def test_loads_yaml(self, tmp_path):
        path = tmp_path / "data.yaml"
        path.write_text(
            "profiles:\n"
            "  - id: p-1\n"
            "    organizationId: org-1\n"
            "opportunities:\n"
            "  - id: o-1\n"
            "    naicsCodes: ['541512']\n"
        )

        source = FileDataSource(str(path))

        assert (await source.get_default_profile("org-1")).id == "p-1"
        assert (await source.get_opportunity("o-1")).naics_codes == ("541512",)

    @pytest.mark.asyncio
    async def test_loads_json(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_text(json.dumps({"profiles": [SAMPLE_PROFILE], "opportunities": [OPPORTUNITY_STRONG]}))

        source = FileDataSource(str(path))

        assert (await source.get_profile("profile-acme")).state == "VA"

    @pytest.mark.asyncio
    async def test_missing_file_is_empty(self, tmp_path):
        source = FileDataSource(str(tmp_path / "nope.yaml"))

        assert await source.get_profile("profile-acme") is None

    @pytest.mark.asyncio
    async def test_bundled_sample_data(self):
        source = FileDataSource(str(SAMPLE_DATA))

        assert (await source.get_default_profile("org-acme")).id == "profile-acme"
        assert await source.get_opportunity("opp-1") is not None
