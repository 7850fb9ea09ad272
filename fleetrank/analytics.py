"""Admin analytics: overview ratios and a pure-Python fallback aggregation."""

from collections import defaultdict
from typing import Any, Dict, Iterable, List

TOP_N = 5


def build_overview(counts: Dict[str, Any]) -> Dict[str, Any]:
    """Derive the overview block from raw counts."""
    total_donors = counts.get("total_donors", 0) or 0
    active_donors = counts.get("active_donors", 0) or 0
    total_raised = float(counts.get("total_raised", 0) or 0)

    return {
        "total_donors": total_donors,
        "active_donors": active_donors,
        "total_raised": total_raised,
        "conversion_rate": (active_donors / total_donors) * 100 if total_donors > 0 else 0,
        "average_donation": total_raised / active_donors if active_donors > 0 else 0,
        "total_campaigns": counts.get("total_campaigns", 0) or 0,
        "active_campaigns": counts.get("active_campaigns", 0) or 0,
        "total_pledges": counts.get("total_pledges", 0) or 0,
    }


def assemble(counts: Dict[str, Any], top_donors: List[dict], top_campaigns: List[dict]) -> Dict[str, Any]:
    return {
        "overview": build_overview(counts),
        # Month-over-month growth is not tracked yet.
        "trends": {"donors_growth": 0, "revenue_growth": 0, "pledge_growth": 0},
        "top_donors": top_donors,
        "top_campaigns": top_campaigns,
    }


def fallback_analytics(
    donors: Iterable[dict], campaigns: Iterable[dict], pledges: Iterable[dict]
) -> Dict[str, Any]:
    """Compute the analytics payload from raw rows when SQL aggregation fails."""
    donors = list(donors)
    campaigns = list(campaigns)
    pledges = list(pledges)

    donor_totals: Dict[int, float] = defaultdict(float)
    donor_counts: Dict[int, int] = defaultdict(int)
    campaign_totals: Dict[int, float] = defaultdict(float)
    campaign_backers: Dict[int, set] = defaultdict(set)

    for pledge in pledges:
        amount = float(pledge.get("amount") or 0)
        donor_totals[pledge["donor_id"]] += amount
        donor_counts[pledge["donor_id"]] += 1
        campaign_totals[pledge["campaign_id"]] += amount
        campaign_backers[pledge["campaign_id"]].add(pledge["donor_id"])

    donors_by_id = {d["id"]: d for d in donors}
    campaigns_by_id = {c["id"]: c for c in campaigns}

    top_donors = [
        {
            "id": donor_id,
            "name": donors_by_id.get(donor_id, {}).get("full_name") or "Unknown",
            "email": donors_by_id.get(donor_id, {}).get("email"),
            "total_donated": total,
            "pledge_count": donor_counts[donor_id],
        }
        for donor_id, total in sorted(donor_totals.items(), key=lambda kv: kv[1], reverse=True)[:TOP_N]
    ]
    top_campaigns = [
        {
            "id": campaign_id,
            "name": campaigns_by_id.get(campaign_id, {}).get("name") or "Unknown",
            "total_raised": total,
            "donor_count": len(campaign_backers[campaign_id]),
            "goal_amount": float(campaigns_by_id.get(campaign_id, {}).get("goal_amount") or 0),
        }
        for campaign_id, total in sorted(campaign_totals.items(), key=lambda kv: kv[1], reverse=True)[:TOP_N]
    ]

    counts = {
        "total_donors": len(donors),
        "active_donors": len(donor_totals),
        "total_raised": sum(donor_totals.values()),
        "total_campaigns": len(campaigns),
        "active_campaigns": sum(1 for c in campaigns if c.get("active")),
        "total_pledges": len(pledges),
    }
    return assemble(counts, top_donors, top_campaigns)
