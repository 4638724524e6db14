from datetime import date

from ops.contractors import ContractorRepository
from ops.recommendations import (
    calculate_availability_score,
    calculate_rating_score,
    get_available_contractors,
    get_contractor_recommendations,
    get_top_contractor_recommendations,
    score_contractors,
)

JOB_SITE = {"lat": 35.4676, "lng": -97.5164}


def contractor(cid, lat=35.4676, lng=-97.5164, overall=4.0, radius=30, trades=("installer",)):
    return {
        "id": cid,
        "businessName": cid.title(),
        "status": "active",
        "trades": list(trades),
        "serviceRadius": radius,
        "address": {"lat": lat, "lng": lng},
        "rating": {"overall": overall},
    }


def test_component_scores():
    assert calculate_availability_score("available") == 100
    assert calculate_availability_score("busy") == 50
    assert calculate_availability_score("unavailable") == 0
    assert calculate_rating_score(5) == 100
    assert calculate_rating_score(3) == 60


def test_contractor_on_site_and_available_scores_high():
    results = score_contractors([contractor("alpha", overall=5.0)], {}, JOB_SITE)
    assert len(results) == 1
    top = results[0]
    assert top["score"] == 100
    assert top["availabilityStatus"] == "available"
    assert top["isWithinServiceRadius"]
    assert top["breakdown"] == {"availabilityScore": 40, "distanceScore": 35, "ratingScore": 25}


def test_ranking_prefers_availability_then_distance():
    contractors = [
        contractor("busy", overall=5.0),
        contractor("far", lat=35.6528, lng=-97.4781, overall=4.0),
        contractor("near", overall=4.0),
    ]
    results = score_contractors(contractors, {"busy": "busy"}, JOB_SITE)
    assert [r["contractorId"] for r in results] == ["near", "far", "busy"]


def test_filters():
    contractors = [
        contractor("ok", overall=4.0),
        contractor("low", overall=2.0),
        contractor("away", lat=36.1550, lng=-95.9850),
        contractor("off", overall=5.0),
        {"id": "nowhere", "status": "active", "address": {"city": "Tulsa"}},
    ]
    results = score_contractors(
        contractors,
        {"off": "unavailable"},
        JOB_SITE,
        {"only_available": True, "max_distance": 50, "min_rating": 3},
    )
    assert [r["contractorId"] for r in results] == ["ok"]


def test_missing_rating_uses_default():
    c = contractor("new")
    c["rating"] = None
    result = score_contractors([c], {}, JOB_SITE)[0]
    assert result["rating"] == 3.0


class TestRepositoryBacked:
    def seed(self, db):
        repo = ContractorRepository(db=db)
        db.seed("contractors", "alpha", contractor("alpha", overall=4.5))
        db.seed("contractors", "beta", contractor("beta", overall=4.5, trades=("electrician",)))
        db.seed("contractors", "gamma", {**contractor("gamma"), "status": "pending"})
        repo.set_availability("beta", date(2026, 5, 4), {"am": "unavailable"})
        return repo

    def test_fetches_active_contractors_and_availability(self, db):
        repo = self.seed(db)
        results = get_contractor_recommendations(date(2026, 5, 4), "am", JOB_SITE, repository=repo)
        assert [r["contractorId"] for r in results] == ["alpha", "beta"]
        assert results[1]["availabilityStatus"] == "unavailable"

    def test_other_blocks_stay_available(self, db):
        repo = self.seed(db)
        results = get_contractor_recommendations(date(2026, 5, 4), "pm", JOB_SITE, repository=repo)
        assert {r["availabilityStatus"] for r in results} == {"available"}

    def test_trade_filter_and_top_limit(self, db):
        repo = self.seed(db)
        results = get_top_contractor_recommendations(
            date(2026, 5, 4), "pm", JOB_SITE, limit=1, filters={"trade_filter": ["electrician"]}, repository=repo
        )
        assert [r["contractorId"] for r in results] == ["beta"]

    def test_available_contractors(self, db):
        repo = self.seed(db)
        available = get_available_contractors(date(2026, 5, 4), "am", JOB_SITE, repository=repo)
        assert [c["id"] for c in available] == ["alpha"]
