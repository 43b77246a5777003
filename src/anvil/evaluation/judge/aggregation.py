"""k-vote aggregation with median scores and majority verdict."""

from __future__ import annotations

import statistics


def _vote_score(vote: dict, name: str) -> float | None:
    entry = vote.get(name)
    if isinstance(entry, dict) and isinstance(entry.get("score"), (int, float)):
        return float(entry["score"])
    return None


def aggregate_k_votes(
    k_results: list[dict],
    criteria: list[dict],
    threshold: float,
) -> tuple[float, bool, list[dict]]:
    """Aggregate k judge votes into a single score.

    For each criterion, collects scores across all votes and takes the
    median, then computes a weighted average across criteria. Each
    vote's own weighted average is compared to *threshold*; a strict
    majority must pass.

    Returns:
        Tuple of (overall_score, passed, per_criterion_details), where
        per_criterion_details has name, median_score, all_scores and
        weight for each criterion.
    """
    if not k_results:
        return (0.0, False, [])

    per_criterion_details: list[dict] = []
    medians: dict[str, float] = {}

    for c in criteria:
        name = c["name"]
        scores = [s for s in (_vote_score(vote, name) for vote in k_results) if s is not None]
        medians[name] = statistics.median(scores) if scores else 0.0
        per_criterion_details.append({
            "name": name,
            "median_score": medians[name],
            "all_scores": scores,
            "weight": c["weight"],
        })

    total_weight = sum(c["weight"] for c in criteria)
    if total_weight == 0:
        overall_score = 0.0
    else:
        overall_score = sum(medians[c["name"]] * c["weight"] for c in criteria) / total_weight

    pass_count = 0
    for vote in k_results:
        # Missing criterion contributes 0.0
        vote_total = sum((_vote_score(vote, c["name"]) or 0.0) * c["weight"] for c in criteria)
        vote_avg = vote_total / total_weight if total_weight > 0 else 0.0
        if vote_avg >= threshold:
            pass_count += 1

    passed = pass_count > len(k_results) / 2

    return (overall_score, passed, per_criterion_details)
