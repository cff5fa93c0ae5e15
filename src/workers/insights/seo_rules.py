"""
Search-visibility rules (organic and paid).

Every rule compares the location's latest search snapshot with the one
before it, or reads the keyword intersections against each competitor.
A rule whose inputs are missing does not fire. Rules that can hit many
keywords fold them into one insight per natural key (location-level, or
one per competitor for overtakes).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from workers.insights.models import (
    AdSample,
    CompetitorOvertakeEvidence,
    GapKeyword,
    GeneratedInsight,
    InsightType,
    KeywordGapEvidence,
    KeywordOverlapEvidence,
    KeywordWinEvidence,
    NewCompetitorAdsEvidence,
    OrganicVisibilityEvidence,
    Overtake,
    PaidVisibilityEvidence,
    RankMove,
    Recommendation,
    Severity,
)
from workers.normalizer.models import (
    AdsSnapshot,
    Confidence,
    DomainRankSnapshot,
    IntersectionRow,
    KeywordGap,
    KeywordIntersectionSnapshot,
    SerpRankingsSnapshot,
)
from workers.normalizer.text import round_half_up, website_domain

logger = logging.getLogger(__name__)

ETV_CHANGE_PCT = 0.1
ETV_CHANGE_ABS = 50
HIGH_CONFIDENCE_PCT = 0.2
KEYWORD_COUNT_CHANGE_ABS = 5
TOP_3 = 3
TOP_10 = 10
TOP_20 = 20
OVERLAP_SPIKE_ABS = 5
MAX_LISTED = 5


@dataclass(frozen=True, slots=True)
class SeoCompetitor:
    competitor_id: str
    name: str
    domain: str | None = None
    intersection: KeywordIntersectionSnapshot | None = None
    previous_intersection: KeywordIntersectionSnapshot | None = None


@dataclass(frozen=True, slots=True)
class SeoInputs:
    location_name: str = "Your location"
    location_domain: str | None = None
    current_rank: DomainRankSnapshot | None = None
    previous_rank: DomainRankSnapshot | None = None
    serp: SerpRankingsSnapshot | None = None
    previous_serp: SerpRankingsSnapshot | None = None
    ads: AdsSnapshot | None = None
    previous_ads: AdsSnapshot | None = None
    competitors: list[SeoCompetitor] = field(default_factory=list)


def _pct(delta: float, previous: float) -> float | None:
    return delta / previous if previous > 0 else None


def _whole_pct(ratio: float) -> int:
    return int(round_half_up(ratio * 100, 0))


# ── Organic ───────────────────────────────────────────────────────────

def organic_visibility(inputs: SeoInputs) -> list[GeneratedInsight]:
    """Traffic move of ≥ 50 ETV and ≥ 10%, else a ranked-keyword move of ≥ 5."""
    current, previous = inputs.current_rank, inputs.previous_rank
    if current is None or previous is None:
        return []

    etv_delta = round_half_up(current.organic.etv - previous.organic.etv, 2)
    kw_delta = current.organic.ranked_keywords - previous.organic.ranked_keywords
    pct = _pct(etv_delta, previous.organic.etv)
    name = inputs.location_name
    site = inputs.location_domain or name

    evidence = OrganicVisibilityEvidence(
        domain=current.domain,
        previous_etv=previous.organic.etv,
        current_etv=current.organic.etv,
        etv_delta=etv_delta,
        etv_pct_change=round_half_up(pct * 100, 1) if pct is not None else None,
        previous_keywords=previous.organic.ranked_keywords,
        current_keywords=current.organic.ranked_keywords,
        keyword_delta=kw_delta,
        new_keywords=current.organic.new_keywords,
        lost_keywords=current.organic.lost_keywords,
    )

    if pct is not None and abs(etv_delta) >= ETV_CHANGE_ABS and abs(pct) >= ETV_CHANGE_PCT:
        up = etv_delta > 0
        change = _whole_pct(pct)
        return [GeneratedInsight(
            insight_type=InsightType.SEO_ORGANIC_VISIBILITY_UP if up else InsightType.SEO_ORGANIC_VISIBILITY_DOWN,
            title=f"{name}'s organic traffic is growing" if up else f"{name}'s organic traffic declined",
            summary=(
                f"Estimated organic traffic for {site} went from {previous.organic.etv:g} to "
                f"{current.organic.etv:g} ({change:+d}%). "
                + (
                    f"You now rank for {current.organic.ranked_keywords} keywords."
                    if up else "Review which keywords lost visibility."
                )
            ),
            confidence=Confidence.HIGH if abs(pct) >= HIGH_CONFIDENCE_PCT else Confidence.MEDIUM,
            severity=Severity.INFO if up else Severity.WARNING,
            evidence=evidence,
            recommendations=[
                Recommendation(
                    title=f"Double down on what's working for {name}",
                    rationale="Find the new keywords driving visits and publish more content around them.",
                )
                if up else
                Recommendation(
                    title=f"Audit recent changes to {inputs.location_domain or 'your site'}",
                    rationale=f"A {abs(change)}% traffic drop suggests ranking losses. Check technical issues and content changes.",
                ),
            ],
        )]

    if abs(kw_delta) >= KEYWORD_COUNT_CHANGE_ABS:
        up = kw_delta > 0
        return [GeneratedInsight(
            insight_type=InsightType.SEO_ORGANIC_VISIBILITY_UP if up else InsightType.SEO_ORGANIC_VISIBILITY_DOWN,
            title=(
                f"{name} ranks for {kw_delta} more keywords" if up
                else f"{name} lost rankings on {abs(kw_delta)} keywords"
            ),
            summary=(
                f"Your site ranks for {current.organic.ranked_keywords} keywords "
                f"({'up' if up else 'down'} from {previous.organic.ranked_keywords})."
            ),
            confidence=Confidence.MEDIUM,
            severity=Severity.INFO if up else Severity.WARNING,
            evidence=evidence,
            recommendations=[
                Recommendation(
                    title="Expand on winning topics" if up else "Identify and recover lost keywords",
                    rationale=(
                        f"{kw_delta} new rankings point to growing topical authority." if up
                        else f"Find the {abs(kw_delta)} keywords that dropped and refresh that content first."
                    ),
                ),
            ],
        )]

    return []


def keyword_opportunity_gap(inputs: SeoInputs) -> list[GeneratedInsight]:
    """Keywords a competitor ranks for and the location does not, by search volume."""
    candidates: list[tuple[IntersectionRow, str]] = [
        (row, comp.competitor_id)
        for comp in inputs.competitors
        if comp.intersection is not None
        for row in comp.intersection.rows
        if row.gap == KeywordGap.LOSS and (row.search_volume or 0) > 0
    ]
    candidates.sort(key=lambda c: (-(c[0].search_volume or 0), c[0].keyword.lower(), c[1]))

    gaps: dict[str, GapKeyword] = {}
    for row, competitor_id in candidates:
        key = row.keyword.lower()
        if key in gaps:
            continue
        gaps[key] = GapKeyword(
            keyword=row.keyword,
            search_volume=row.search_volume or 0,
            cpc=row.cpc,
            competitor_rank=row.competitor_rank,
            competitor_id=competitor_id,
        )
        if len(gaps) == MAX_LISTED:
            break
    if not gaps:
        return []

    top = list(gaps.values())
    total = sum(g.search_volume for g in top)
    lead = top[0]
    intent = f"${lead.cpc:.2f} CPC" if lead.cpc else "commercial intent"
    return [GeneratedInsight(
        insight_type=InsightType.SEO_KEYWORD_OPPORTUNITY_GAP,
        title=f"{len(top)} keyword opportunities competitors are winning",
        summary=(
            f'Competitors rank for "{lead.keyword}" and {len(top) - 1} other keywords '
            f"({total} combined monthly searches) where {inputs.location_name} doesn't appear."
        ),
        confidence=Confidence.HIGH,
        severity=Severity.WARNING,
        evidence=KeywordGapEvidence(gap_keywords=top, total_volume=total),
        recommendations=[
            Recommendation(
                title=f'Create content targeting "{lead.keyword}"',
                rationale=f"{lead.search_volume} monthly searches and {intent}.",
            ),
            Recommendation(
                title="Work through the full gap list",
                rationale=f"These {len(top)} keywords bring competitors {total} searches a month. Prioritize by volume.",
            ),
        ],
    )]


def _paired_entries(inputs: SeoInputs):
    """(keyword entry now, same keyword before) for keywords present in both SERP snapshots."""
    if inputs.serp is None or inputs.previous_serp is None:
        return []
    before = {e.keyword.lower(): e for e in inputs.previous_serp.entries}
    return [(e, before[e.keyword.lower()]) for e in inputs.serp.entries if e.keyword.lower() in before]


def keyword_wins(inputs: SeoInputs) -> list[GeneratedInsight]:
    """Keywords where the location crossed into the Top 3 or onto page 1."""
    domain = website_domain(inputs.location_domain)
    if domain is None:
        return []

    top_3: list[RankMove] = []
    top_10: list[RankMove] = []
    for now, before in _paired_entries(inputs):
        current, previous = now.positions.get(domain), before.positions.get(domain)
        if current is None or previous is None:
            continue
        move = RankMove(keyword=now.keyword, previous_rank=previous, current_rank=current)
        if current <= TOP_3 < previous:
            top_3.append(move)
        elif current <= TOP_10 < previous:
            top_10.append(move)
    if not top_3 and not top_10:
        return []

    top_3, top_10 = top_3[:MAX_LISTED], top_10[:MAX_LISTED]
    name = inputs.location_name
    if top_3:
        lead = top_3[0]
        title = f'"{lead.keyword}" reached Top 3' if len(top_3) == 1 else f"{len(top_3)} keywords reached Top 3"
        summary = f'{name} climbed from position {lead.previous_rank} to {lead.current_rank} for "{lead.keyword}".'
        recommendation = Recommendation(
            title=f'Strengthen "{lead.keyword}" content',
            rationale="Add internal links and keep the page fresh to hold a Top 3 position.",
        )
    else:
        lead = top_10[0]
        title = f'"{lead.keyword}" entered page 1' if len(top_10) == 1 else f"{len(top_10)} keywords entered page 1"
        summary = f'{name} moved from position {lead.previous_rank} to {lead.current_rank} for "{lead.keyword}".'
        recommendation = Recommendation(
            title=f'Push "{lead.keyword}" into Top 3',
            rationale="Optimize titles and add schema markup to climb further.",
        )
    return [GeneratedInsight(
        insight_type=InsightType.SEO_KEYWORD_WIN,
        title=title,
        summary=summary,
        confidence=Confidence.HIGH if top_3 else Confidence.MEDIUM,
        severity=Severity.INFO,
        evidence=KeywordWinEvidence(domain=domain, top_3=top_3, top_10=top_10),
        recommendations=[recommendation],
    )]


def competitor_overtakes(inputs: SeoInputs) -> list[GeneratedInsight]:
    """A competitor that was behind the location on a keyword and is now ahead, inside the Top 20."""
    own = website_domain(inputs.location_domain)
    if own is None:
        return []
    pairs = _paired_entries(inputs)

    insights: list[GeneratedInsight] = []
    for comp in sorted(inputs.competitors, key=lambda c: c.competitor_id):
        theirs = website_domain(comp.domain)
        if theirs is None:
            continue
        overtakes: list[Overtake] = []
        for now, before in pairs:
            mine_now, mine_before = now.positions.get(own), before.positions.get(own)
            them_now, them_before = now.positions.get(theirs), before.positions.get(theirs)
            if None in (mine_now, mine_before, them_now, them_before):
                continue
            if them_before > mine_before and them_now < mine_now and them_now <= TOP_20:
                overtakes.append(Overtake(
                    keyword=now.keyword,
                    competitor_previous_rank=them_before,
                    competitor_current_rank=them_now,
                    your_previous_rank=mine_before,
                    your_current_rank=mine_now,
                ))
        if not overtakes:
            continue

        lead = overtakes[0]
        title = (
            f'{comp.name} overtook you on "{lead.keyword}"' if len(overtakes) == 1
            else f"{comp.name} overtook you on {len(overtakes)} keywords"
        )
        insights.append(GeneratedInsight(
            insight_type=InsightType.SEO_COMPETITOR_OVERTAKE,
            title=title,
            summary=(
                f'{comp.name} moved from position {lead.competitor_previous_rank} to '
                f'{lead.competitor_current_rank} on "{lead.keyword}", passing {inputs.location_name} '
                f"(now at position {lead.your_current_rank})."
            ),
            confidence=Confidence.HIGH,
            severity=Severity.WARNING,
            evidence=CompetitorOvertakeEvidence(
                competitor_id=comp.competitor_id,
                competitor_name=comp.name,
                competitor_domain=theirs,
                keywords=overtakes[:MAX_LISTED],
            ),
            recommendations=[
                Recommendation(
                    title=f'Analyze {comp.name}\'s content for "{lead.keyword}"',
                    rationale="Check what content or backlinks changed on their side and answer with a stronger page.",
                ),
            ],
            competitor_id=comp.competitor_id,
        ))
    return insights


# ── Paid ──────────────────────────────────────────────────────────────

def paid_visibility_change(inputs: SeoInputs) -> list[GeneratedInsight]:
    current, previous = inputs.current_rank, inputs.previous_rank
    if current is None or previous is None:
        return []
    if current.paid.etv == 0 and previous.paid.etv == 0:
        return []

    delta = round_half_up(current.paid.etv - previous.paid.etv, 2)
    pct = _pct(delta, previous.paid.etv)
    if pct is None or abs(delta) < ETV_CHANGE_ABS or abs(pct) < ETV_CHANGE_PCT:
        return []

    up = delta > 0
    name = inputs.location_name
    return [GeneratedInsight(
        insight_type=InsightType.SEO_PAID_VISIBILITY_CHANGE,
        title=f"{name}'s paid visibility {'increased' if up else 'decreased'}",
        summary=(
            f"Estimated paid traffic {'grew' if up else 'fell'} from {previous.paid.etv:g} to "
            f"{current.paid.etv:g} ({_whole_pct(pct):+d}%). Paid keywords: {current.paid.ranked_keywords}."
        ),
        confidence=Confidence.MEDIUM,
        severity=Severity.INFO if up else Severity.WARNING,
        evidence=PaidVisibilityEvidence(
            domain=current.domain,
            previous_paid_etv=previous.paid.etv,
            current_paid_etv=current.paid.etv,
            delta=delta,
            pct_change=round_half_up(pct * 100, 1),
            previous_paid_keywords=previous.paid.ranked_keywords,
            current_paid_keywords=current.paid.ranked_keywords,
        ),
        recommendations=[
            Recommendation(
                title="Monitor paid ROI" if up else f"Review {inputs.location_domain or 'your'} ad campaigns",
                rationale=(
                    "More paid visibility means more spend. Make sure conversions justify it." if up
                    else "A paid drop usually means budget changes, paused campaigns or pricier placements."
                ),
            ),
        ],
    )]


def new_competitor_ads(inputs: SeoInputs) -> list[GeneratedInsight]:
    """Competitor domains advertising now that were absent from the previous ads snapshot."""
    if inputs.ads is None or inputs.previous_ads is None:
        return []
    competitor_domains = {d for d in (website_domain(c.domain) for c in inputs.competitors) if d}
    seen_before = {a.domain for a in inputs.previous_ads.creatives if a.domain}
    fresh = [
        a for a in inputs.ads.creatives
        if a.domain in competitor_domains and a.domain not in seen_before
    ]
    if not fresh:
        return []

    domains = list(dict.fromkeys(a.domain for a in fresh))[:3]
    headlines = [f'"{a.headline}"' for a in fresh if a.headline][:3]
    return [GeneratedInsight(
        insight_type=InsightType.SEO_NEW_COMPETITOR_ADS,
        title=f"{len(domains)} competitor(s) running new ads",
        summary=(
            f"New ads from {', '.join(domains)} on keywords in your space. "
            f"Sample headlines: {', '.join(headlines) or 'N/A'}."
        ),
        confidence=Confidence.MEDIUM,
        severity=Severity.INFO,
        evidence=NewCompetitorAdsEvidence(
            new_advertiser_domains=domains,
            sample_ads=[AdSample(domain=a.domain, headline=a.headline, keyword=a.keyword) for a in fresh[:MAX_LISTED]],
        ),
        recommendations=[
            Recommendation(
                title="Review competitor ad messaging",
                rationale=f"{domains[0]} now bids on keywords relevant to {inputs.location_name}. Look for angles they miss.",
            ),
        ],
    )]


def _shared_count(snapshots: list[KeywordIntersectionSnapshot]) -> int:
    return sum(
        1
        for snap in snapshots
        for row in snap.rows
        if row.gap == KeywordGap.SHARED and row.own_rank is not None and row.competitor_rank is not None
    )


def keyword_overlap_spike(inputs: SeoInputs) -> list[GeneratedInsight]:
    """Keywords shared with competitors grew by at least five since the previous intersections."""
    current = [c.intersection for c in inputs.competitors if c.intersection is not None]
    previous = [c.previous_intersection for c in inputs.competitors if c.previous_intersection is not None]
    if not current or not previous:
        return []

    now, before = _shared_count(current), _shared_count(previous)
    delta = now - before
    if delta < OVERLAP_SPIKE_ABS:
        return []
    return [GeneratedInsight(
        insight_type=InsightType.SEO_PAID_KEYWORD_OVERLAP_SPIKE,
        title=f"Keyword competition overlap increased by {delta}",
        summary=(
            f"You now share {now} keywords with competitors (up from {before}), "
            f"so more searches around {inputs.location_name} are head-to-head."
        ),
        confidence=Confidence.MEDIUM,
        severity=Severity.WARNING,
        evidence=KeywordOverlapEvidence(previous_overlap=before, current_overlap=now, delta=delta),
        recommendations=[
            Recommendation(
                title="Differentiate your keyword strategy",
                rationale="Target long-tail variations and local modifiers to step out of direct competition.",
            ),
        ],
    )]


SEO_RULES = [
    organic_visibility,
    keyword_opportunity_gap,
    keyword_wins,
    competitor_overtakes,
    paid_visibility_change,
    new_competitor_ads,
    keyword_overlap_spike,
]


def generate_seo_insights(inputs: SeoInputs) -> list[GeneratedInsight]:
    insights: list[GeneratedInsight] = []
    for rule in SEO_RULES:
        produced = rule(inputs)
        if not produced:
            logger.debug("SEO rule %s did not fire", rule.__name__)
        insights.extend(produced)
    return insights
