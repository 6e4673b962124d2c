#!/usr/bin/env python3
"""
Factor Calculations - Per-factor scores for the deterministic calculator.

Each factor returns a FactorAssessment with a 0-100 score and a flag telling
whether both sides carried comparable data. Missing data never raises; it
yields the neutral score 50.

Factors:
- classification: NAICS code alignment
- geographic: place of performance vs. profile location preferences
- certification: required certifications and set-aside eligibility
- value_fit: estimated value vs. past contract sizes
- clearance: security clearance level
- performance_history: past contracts, agency match and recency
- capability: core competencies and government level experience
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from core.scorer.models import Opportunity, Profile, _as_float

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 50.0

CLEARANCE_LEVELS = ['NONE', 'PUBLIC_TRUST', 'CONFIDENTIAL', 'SECRET', 'TOP_SECRET', 'TS_SCI']

_CLEARANCE_ALIASES = {
    'NONE': 'NONE',
    'NOTREQUIRED': 'NONE',
    'PUBLICTRUST': 'PUBLIC_TRUST',
    'CONFIDENTIAL': 'CONFIDENTIAL',
    'SECRET': 'SECRET',
    'TOPSECRET': 'TOP_SECRET',
    'TS': 'TOP_SECRET',
    'TSSCI': 'TS_SCI',
    'TOPSECRETSCI': 'TS_SCI',
}

# Set-aside programs, most specific first so EDWOSB is not read as WOSB.
_SET_ASIDE_FAMILIES = [
    ('EDWOSB', ('EDWOSB', 'ECONOMICALLYDISADVANTAGEDWOMAN')),
    ('WOSB', ('WOSB', 'WOMANOWNED', 'WOMENOWNED')),
    ('SDVOSB', ('SDVOSB', 'SERVICEDISABLED')),
    ('VOSB', ('VOSB', 'VETERANOWNED')),
    ('HUBZONE', ('HUBZONE',)),
    ('8A', ('8A', 'SBA8A')),
    ('SMALL_BUSINESS', ('SMALLBUSINESS', 'SBA', 'SBP', 'TOTALSMALL')),
]

_INACTIVE_STATUSES = {'EXPIRED', 'INACTIVE', 'REVOKED', 'SUSPENDED', 'PENDING'}

_TRAVEL_SCORES = {
    'NATIONAL': 70.0,
    'INTERNATIONAL': 70.0,
    'REGIONAL': 50.0,
    'LOCAL': 30.0,
}

_STATE_PREFERENCE_SCORES = {
    'PREFERRED': 100.0,
    'WILLING': 80.0,
    'AVOID': 30.0,
}

RECENT_CONTRACT_DAYS = 2 * 365
RECENT_PROJECT_YEARS = 3

GOVERNMENT_LEVELS = ('FEDERAL', 'STATE', 'LOCAL')

# Checked in order; unknown agencies are federal.
_LEVEL_KEYWORDS = [
    ('FEDERAL', (
        'department of', 'dept of', 'dod', 'defense', 'gsa', 'general services', 'homeland security',
        'dhs', 'veterans affairs', 'health and human services', 'hhs', 'treasury', 'commerce', 'epa',
        'environmental protection', 'nasa', 'sba', 'small business administration', 'agriculture', 'usda',
        'federal', 'national',
    )),
    ('STATE', ('state',)),
    ('LOCAL', ('city', 'county', 'municipal', 'town', 'village', 'district')),
]

# Preferred level -> opportunity level -> score
_LEVEL_COMPATIBILITY = {
    'FEDERAL': {'FEDERAL': 100.0, 'STATE': 60.0, 'LOCAL': 40.0},
    'STATE': {'STATE': 100.0, 'FEDERAL': 60.0, 'LOCAL': 80.0},
    'LOCAL': {'LOCAL': 100.0, 'STATE': 80.0, 'FEDERAL': 30.0},
}


@dataclass
class FactorAssessment:
    score: float
    has_data: bool
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)
    details: str = ""


def _neutral(details: str) -> FactorAssessment:
    return FactorAssessment(score=NEUTRAL_SCORE, has_data=False, details=details)


def _normalize_token(value: Any) -> str:
    return re.sub(r'[^A-Z0-9]', '', str(value).upper())


def _naics_digits(value: Any) -> str:
    return re.sub(r'\D', '', str(value or ''))


def score_classification(opportunity: Opportunity, profile: Profile) -> FactorAssessment:
    """
    Score NAICS alignment.

    Exact primary 100, exact secondary 80, same 4-digit industry group 60,
    same 2-digit sector 40, no overlap 0.
    """
    opp_codes = [c for c in (_naics_digits(code) for code in opportunity.naics_codes) if c]
    primary = _naics_digits(profile.primary_naics)
    secondary = [c for c in (_naics_digits(code) for code in profile.secondary_naics) if c]
    profile_codes = ([primary] if primary else []) + secondary

    if not opp_codes or not profile_codes:
        return _neutral("NAICS codes missing on profile or opportunity")

    if primary and primary in opp_codes:
        return FactorAssessment(
            score=100.0, has_data=True,
            strengths=[f"Primary NAICS {primary} matches the opportunity"],
            details=f"Exact primary NAICS match ({primary})",
        )

    for code in secondary:
        if code in opp_codes:
            return FactorAssessment(
                score=80.0, has_data=True,
                strengths=[f"Secondary NAICS {code} matches the opportunity"],
                details=f"Exact secondary NAICS match ({code})",
            )

    for prefix_len, score, label in ((4, 60.0, "industry group"), (2, 40.0, "sector")):
        for profile_code in profile_codes:
            if len(profile_code) < prefix_len:
                continue
            for opp_code in opp_codes:
                if len(opp_code) >= prefix_len and profile_code[:prefix_len] == opp_code[:prefix_len]:
                    return FactorAssessment(
                        score=score, has_data=True,
                        strengths=[f"Same NAICS {label} ({opp_code[:prefix_len]})"],
                        weaknesses=["No exact NAICS code match"],
                        details=f"NAICS {label} match {profile_code} ~ {opp_code}",
                    )

    return FactorAssessment(
        score=0.0, has_data=True,
        weaknesses=[f"No NAICS overlap with {', '.join(opp_codes)}"],
        details="No NAICS overlap",
    )


def _state_code(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip().upper()
    return text or None


def score_geographic(opportunity: Opportunity, profile: Profile) -> FactorAssessment:
    """Score the place of performance against the profile's location preferences."""
    opp_state = _state_code(opportunity.state)
    if not opp_state:
        return _neutral("Place of performance not specified")

    prefs = profile.geographic_preferences or {}

    if prefs.get('work_from_home') or prefs.get('workFromHome'):
        return FactorAssessment(
            score=95.0, has_data=True,
            strengths=["Able to perform remotely"],
            details="Remote work capability",
        )

    states = prefs.get('states')
    if states is None:
        # Older profiles nest state preferences under preferences.state[].data.code
        states = [
            {'code': (p.get('data') or {}).get('code') or p.get('name'), 'type': p.get('type')}
            for p in ((prefs.get('preferences') or {}).get('state') or [])
            if isinstance(p, dict)
        ]
    for state_pref in states or []:
        if not isinstance(state_pref, dict):
            continue
        if _state_code(state_pref.get('code')) == opp_state:
            pref_type = str(state_pref.get('type') or 'AVOID').upper()
            score = _STATE_PREFERENCE_SCORES.get(pref_type, 30.0)
            assessment = FactorAssessment(score=score, has_data=True, details=f"{pref_type} state {opp_state}")
            if score >= 80:
                assessment.strengths.append(f"{opp_state} is a {pref_type.lower()} state")
            else:
                assessment.weaknesses.append(f"{opp_state} is marked to avoid")
            return assessment

    home_state = _state_code(profile.state)
    if home_state and home_state == opp_state:
        same_city = (
            profile.city and opportunity.city
            and str(profile.city).strip().lower() == str(opportunity.city).strip().lower()
        )
        return FactorAssessment(
            score=100.0 if same_city else 90.0, has_data=True,
            strengths=[f"Located in {opportunity.city if same_city else opp_state}"],
            details="Same city" if same_city else "Same state",
        )

    travel = str(prefs.get('travel_willingness') or prefs.get('travelWillingness') or '').upper()
    if travel in _TRAVEL_SCORES:
        score = _TRAVEL_SCORES[travel]
        assessment = FactorAssessment(score=score, has_data=True, details=f"Travel willingness {travel}")
        if score < 50:
            assessment.weaknesses.append("Limited willingness to travel")
        return assessment

    if not home_state:
        return _neutral("Profile location not specified")

    return FactorAssessment(
        score=25.0, has_data=True,
        weaknesses=[f"Based in {home_state}, work performed in {opp_state}"],
        details="Different state",
    )


def _set_aside_family(value: Any) -> Optional[str]:
    token = _normalize_token(value)
    if not token:
        return None
    for family, markers in _SET_ASIDE_FAMILIES:
        if any(marker in token for marker in markers):
            return family
    return token


def _parse_date(value: Any) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00')).date()
    except ValueError:
        return None


def active_certifications(profile: Profile, today: Optional[date] = None) -> List[Dict[str, Any]]:
    """Certifications that are neither expired nor marked inactive."""
    today = today or date.today()
    active = []
    for cert in profile.certifications:
        status = str(cert.get('status') or '').upper()
        if status in _INACTIVE_STATUSES:
            continue
        expires = _parse_date(cert.get('expiration_date') or cert.get('expirationDate'))
        if expires is not None and expires < today:
            continue
        active.append(cert)
    return active


def _cert_tokens(certs: Iterable[Dict[str, Any]]) -> set:
    tokens = set()
    for cert in certs:
        for key in ('type', 'name'):
            if cert.get(key):
                tokens.add(_normalize_token(cert[key]))
                tokens.add(_set_aside_family(cert[key]))
    tokens.discard(None)
    tokens.discard('')
    return tokens


def score_certification(
    opportunity: Opportunity,
    profile: Profile,
    today: Optional[date] = None
) -> FactorAssessment:
    """
    Score required certifications and set-aside eligibility.

    Required certifications score the fraction held. A set-aside scores 100
    when the profile holds the matching certification and lists the
    set-aside, 95 for the certification alone, 90 for listed eligibility
    alone, 20 when only other certifications are held and 0 otherwise.
    When both apply the two scores are averaged.
    """
    required = [r for r in opportunity.required_certifications if r]
    set_aside = opportunity.set_aside_type
    if set_aside and _normalize_token(set_aside) in ('', 'NONE', 'NA', 'FULLANDOPEN'):
        set_aside = None

    if not required and not set_aside:
        return FactorAssessment(score=100.0, has_data=True, details="No certification requirements")

    certs = active_certifications(profile, today)
    if not certs and not profile.set_asides:
        return FactorAssessment(
            score=0.0, has_data=True,
            weaknesses=["No certifications on file for a restricted opportunity"],
            details="No certification data",
        )

    held = _cert_tokens(certs)
    parts = []
    assessment = FactorAssessment(score=0.0, has_data=True)

    if required:
        matched = [
            r for r in required
            if _normalize_token(r) in held or _set_aside_family(r) in held
        ]
        parts.append(100.0 * len(matched) / len(required))
        for r in matched:
            assessment.strengths.append(f"Holds required certification {r}")
        for r in required:
            if r not in matched:
                assessment.weaknesses.append(f"Missing required certification {r}")

    if set_aside:
        family = _set_aside_family(set_aside)
        has_cert = family in held
        eligible = family in {_set_aside_family(s) for s in profile.set_asides}
        if has_cert and eligible:
            parts.append(100.0)
        elif has_cert:
            parts.append(95.0)
        elif eligible:
            parts.append(90.0)
        elif certs:
            parts.append(20.0)
        else:
            parts.append(0.0)
        if has_cert or eligible:
            assessment.strengths.append(f"Eligible for {set_aside} set-aside")
        else:
            assessment.weaknesses.append(f"Not eligible for {set_aside} set-aside")

    assessment.score = sum(parts) / len(parts)
    assessment.details = f"{len(certs)} active certification(s)"
    return assessment


def _records(past: Dict[str, Any], *keys: str) -> List[Dict[str, Any]]:
    for key in keys:
        records = past.get(key)
        if isinstance(records, list):
            return [r for r in records if isinstance(r, dict)]
    return []


def _past_project_values(profile: Profile) -> List[float]:
    past = profile.past_performance or {}
    values = []
    for record in _records(past, 'key_projects', 'keyProjects') + _records(past, 'contracts'):
        value = _as_float(record.get('value'))
        if value is not None and value > 0:
            values.append(value)
    return values


def _same_agency(record_agency: Any, opp_agency: Optional[str]) -> bool:
    if not record_agency or not opp_agency:
        return False
    if isinstance(record_agency, dict):
        record_agency = record_agency.get('name')
    return str(record_agency).strip().lower() == str(opp_agency).strip().lower()


def _score_contracts(contracts: List[Dict[str, Any]], opportunity: Opportunity, today: date) -> FactorAssessment:
    """Contract records: same agency first, the most recent one counts."""
    same_agency = [c for c in contracts if _same_agency(c.get('agency'), opportunity.agency)]
    if same_agency:
        latest = max(
            same_agency,
            key=lambda c: _parse_date(c.get('end_date') or c.get('endDate')) or date.min,
        )
        ended = _parse_date(latest.get('end_date') or latest.get('endDate'))
        recent = ended is not None and (today - ended).days < RECENT_CONTRACT_DAYS
        excellent = str(latest.get('performance') or latest.get('rating') or '').upper() == 'EXCELLENT'
        if excellent:
            score, details = (100.0 if recent else 95.0), "Excellent track record with same agency"
        else:
            score, details = (85.0 if recent else 80.0), "Previous experience with same agency"
        return FactorAssessment(
            score=score, has_data=True,
            strengths=[f"Past performance with {opportunity.agency}"],
            details=details + (" (recent)" if recent else ""),
        )

    if any(str(c.get('performance') or c.get('rating') or '').upper() == 'EXCELLENT' for c in contracts):
        return FactorAssessment(
            score=70.0, has_data=True,
            weaknesses=["No past performance with this agency"],
            details="Good relevant experience with different agency",
        )
    return FactorAssessment(
        score=60.0, has_data=True,
        weaknesses=["No past performance with this agency"],
        details="Moderate past performance record",
    )


def _is_government_project(project: Dict[str, Any]) -> bool:
    customer = str(project.get('customer_type') or project.get('customerType') or '').upper()
    if customer in GOVERNMENT_LEVELS:
        return True
    client = str(project.get('client') or '').lower()
    return any(word in client for word in ('department', 'agency', 'government'))


def _score_key_projects(projects: List[Dict[str, Any]], opportunity: Opportunity, today: date) -> FactorAssessment:
    """Project summaries: government work, recency and agency level."""
    gov_projects = [p for p in projects if _is_government_project(p)]
    if not gov_projects:
        return FactorAssessment(
            score=55.0, has_data=True,
            details=f"General project experience ({len(projects)} projects)",
        )

    recent = []
    for project in gov_projects:
        year = _as_float(
            project.get('completed_year') or project.get('completedYear') or project.get('completionYear')
        )
        if year is not None and year >= today.year - RECENT_PROJECT_YEARS:
            recent.append(project)
    if not recent:
        return FactorAssessment(
            score=60.0, has_data=True,
            details=f"Government project experience ({len(gov_projects)} projects)",
        )

    level = government_level(opportunity.agency)
    if level and any(
        str(p.get('customer_type') or p.get('customerType') or '').upper() == level for p in recent
    ):
        return FactorAssessment(
            score=90.0, has_data=True,
            strengths=[f"Recent {level.lower()} government projects"],
            details=f"Recent government experience with similar agency type ({len(recent)} projects)",
        )
    return FactorAssessment(
        score=75.0, has_data=True,
        strengths=["Recent government project experience"],
        details=f"Recent government project experience ({len(recent)} projects)",
    )


def score_past_performance(
    opportunity: Opportunity,
    profile: Profile,
    today: Optional[date] = None
) -> FactorAssessment:
    """
    Score past performance.

    Contract records win over project summaries. Same agency scores 80-100
    by rating and recency (ended within two years), an excellent record
    elsewhere 70, any other record 60. Project summaries score 55-90 by
    government customer, completion within three years and agency level.
    Years in business (5+) give 60, a free-text description 55.
    """
    today = today or date.today()
    past = profile.past_performance or {}

    contracts = _records(past, 'contracts')
    if contracts:
        return _score_contracts(contracts, opportunity, today)

    projects = _records(past, 'key_projects', 'keyProjects')
    if projects:
        return _score_key_projects(projects, opportunity, today)

    years = _as_float(past.get('years_in_business') or past.get('yearsInBusiness'))
    if years is not None and years >= 5:
        return FactorAssessment(score=60.0, has_data=True, details=f"{int(years)} years in business")
    if past.get('description'):
        return FactorAssessment(score=55.0, has_data=True, details="Past performance described")

    return _neutral("No documented past performance")


def score_value_fit(opportunity: Opportunity, profile: Profile) -> FactorAssessment:
    """Compare the opportunity's estimated value with the largest past contract."""
    opp_value = opportunity.estimated_value
    if opp_value is None or opp_value <= 0:
        return _neutral("Opportunity value not specified")

    values = _past_project_values(profile)
    if values:
        reference = max(values)
    else:
        past = profile.past_performance or {}
        reference = _as_float(past.get('total_contract_value') or past.get('totalContractValue'))
    if reference is None or reference <= 0:
        return _neutral("No past contract values on file")

    ratio = opp_value / reference
    if 0.5 <= ratio <= 3:
        score, note = 100.0, "in line with past contracts"
    elif 0.1 <= ratio < 0.5:
        score, note = 85.0, "smaller than past contracts"
    elif ratio < 0.1:
        score, note = 60.0, "much smaller than past contracts"
    elif ratio <= 5:
        score, note = 70.0, "larger than past contracts"
    elif ratio <= 10:
        score, note = 40.0, "much larger than past contracts"
    else:
        score, note = 15.0, "far beyond past contract sizes"

    assessment = FactorAssessment(score=score, has_data=True, details=f"Value ratio {ratio:.2f}: {note}")
    if score >= 85:
        assessment.strengths.append(f"Contract size {note}")
    elif score <= 40:
        assessment.weaknesses.append(f"Contract size {note}")
    return assessment


def normalize_clearance(value: Any) -> Optional[str]:
    """Map a clearance string to a canonical level, or None when unrecognised."""
    token = _normalize_token(value)
    if not token:
        return 'NONE'
    return _CLEARANCE_ALIASES.get(token)


def score_clearance(opportunity: Opportunity, profile: Profile) -> FactorAssessment:
    """Score the held clearance against the required one. One level short is 40."""
    required_raw = opportunity.security_clearance_required
    required = normalize_clearance(required_raw)
    if required == 'NONE':
        return FactorAssessment(score=100.0, has_data=True, details="No clearance required")

    held = normalize_clearance(profile.security_clearance)
    if required is None or held is None:
        logger.debug(f"Unrecognised clearance level: required={required_raw!r} held={profile.security_clearance!r}")
        return _neutral("Unrecognised clearance level")

    gap = CLEARANCE_LEVELS.index(required) - CLEARANCE_LEVELS.index(held)
    if gap <= 0:
        return FactorAssessment(
            score=100.0, has_data=True,
            strengths=[f"Holds {held} clearance"],
            details=f"{held} meets {required}",
        )
    return FactorAssessment(
        score=40.0 if gap == 1 else 0.0, has_data=True,
        weaknesses=[f"Requires {required} clearance, profile holds {held}"],
        details=f"{held} is {gap} level(s) below {required}",
    )


def government_level(agency: Optional[str]) -> Optional[str]:
    """FEDERAL, STATE or LOCAL from the agency name; None when there is no agency."""
    if not agency:
        return None
    name = str(agency).lower()
    for level, keywords in _LEVEL_KEYWORDS:
        if any(re.search(rf'\b{re.escape(keyword)}\b', name) for keyword in keywords):
            return level
    return 'FEDERAL'


def _words(text: str) -> set:
    return set(re.findall(r'[a-z0-9]+', text.lower()))


def matched_capabilities(opportunity: Opportunity, profile: Profile) -> List[str]:
    """Capabilities whose significant words all appear in the title or description."""
    text_words = _words(f"{opportunity.title} {opportunity.description}")
    matched = []
    for capability in profile.capabilities:
        words = {w for w in _words(capability) if len(w) >= 3}
        if words and words <= text_words:
            matched.append(capability)
    return matched


def score_capability(opportunity: Opportunity, profile: Profile) -> FactorAssessment:
    """
    Score core competencies and government level experience.

    Competencies: 20 with no match, 75 for one, 100 for two or more.
    Government level: 100 on a listed level, otherwise the best
    compatibility (state and local sit closer than federal and local).
    Averaged when both apply.
    """
    parts = []
    assessment = FactorAssessment(score=0.0, has_data=True)
    notes = []

    opp_text = f"{opportunity.title} {opportunity.description}".strip()
    if profile.capabilities and opp_text:
        matched = matched_capabilities(opportunity, profile)
        if matched:
            parts.append(min(100.0, 50.0 + 25.0 * len(matched)))
            assessment.strengths.extend(f"Core competency: {c}" for c in matched)
        else:
            parts.append(20.0)
            assessment.weaknesses.append("No listed competency appears in the solicitation")
        notes.append(f"{len(matched)}/{len(profile.capabilities)} competencies matched")

    levels = [str(level).strip().upper() for level in profile.government_levels]
    levels = [level for level in levels if level in GOVERNMENT_LEVELS]
    opp_level = government_level(opportunity.agency)
    if levels and opp_level:
        if opp_level in levels:
            parts.append(100.0)
            assessment.strengths.append(f"Works at the {opp_level.lower()} level")
        else:
            compatibility = max(_LEVEL_COMPATIBILITY[level][opp_level] for level in levels)
            parts.append(compatibility)
            assessment.weaknesses.append(f"Prefers {', '.join(levels)} work, opportunity is {opp_level}")
        notes.append(f"{opp_level} opportunity")

    if not parts:
        return _neutral("No competencies or government levels to compare")

    assessment.score = sum(parts) / len(parts)
    assessment.details = "; ".join(notes)
    return assessment


FACTOR_FUNCTIONS = {
    'classification': score_classification,
    'geographic': score_geographic,
    'certification': score_certification,
    'value_fit': score_value_fit,
    'clearance': score_clearance,
    'performance_history': score_past_performance,
    'capability': score_capability,
}

# Factors whose result depends on the reference date
DATED_FACTORS = frozenset({'certification', 'performance_history'})
