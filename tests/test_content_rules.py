from workers.insights.content_rules import feature_gaps, generate_content_insights
from workers.insights.models import CompetitorContent, InsightType, Severity
from workers.normalizer.models import Confidence, DetectedFeatures, SiteContentSnapshot


def _site(**flags) -> SiteContentSnapshot:
    return SiteContentSnapshot(website="https://example.com", detected=DetectedFeatures(**flags))


def _rival(site, competitor_id="10"):
    return CompetitorContent(competitor_id=competitor_id, competitor_name="Taco Hermanos", site_content=site)


def test_feature_gaps_in_report_order():
    own = DetectedFeatures(online_ordering=True)
    theirs = DetectedFeatures(catering=True, reservation=True, online_ordering=True)
    assert feature_gaps(own, theirs) == ["online reservations", "catering services"]


def test_two_gaps_make_one_warning_with_one_recommendation_each():
    insights = generate_content_insights(_site(), [_rival(_site(reservation=True, private_dining=True))])
    [insight] = [i for i in insights if i.insight_type == InsightType.CONVERSION_FEATURE_GAP]
    assert insight.severity == Severity.WARNING
    assert insight.confidence == Confidence.HIGH
    assert insight.evidence.missing_features == ["online reservations", "private dining page"]
    assert [r.title for r in insight.recommendations] == [
        "Add online reservations to your website",
        "Add private dining page to your website",
    ]


def test_single_gap_is_info():
    [insight] = generate_content_insights(_site(), [_rival(_site(catering=True))])
    assert insight.severity == Severity.INFO


def test_delivery_platform_gap():
    location = _site(delivery_platforms=["doordash"])
    rival = _site(delivery_platforms=["ubereats", "doordash", "grubhub"])
    [insight] = generate_content_insights(location, [_rival(rival)])
    assert insight.insight_type == InsightType.DELIVERY_PLATFORM_GAP
    assert insight.title == "Taco Hermanos is on grubhub, ubereats"
    assert insight.evidence.location_platforms == ["doordash"]
    assert insight.recommendations[0].title == "Consider joining grubhub and ubereats"


def test_no_location_site_means_no_content_insights():
    assert generate_content_insights(None, [_rival(_site(reservation=True))]) == []


def test_competitor_without_site_is_skipped():
    assert generate_content_insights(_site(), [_rival(None)]) == []
