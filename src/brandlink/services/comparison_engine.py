"""
Manufacturer comparison, matching and ranking.

Pure functions over manufacturer documents (dicts). Scores are 0-100.

Similarity factors used by `compare_manufacturers`:

| Factor | Points |
|--------|--------|
| Same industry | 25 |
| Services overlap (Jaccard) | 25 |
| MOQ similarity (min / max) | 20 |
| Same headquarters country | 10 |
| Certifications overlap by name (Jaccard) | 20 |
"""

from typing import Any, Dict, Iterable, List, Optional, Set

INDUSTRY_POINTS = 25
SERVICES_POINTS = 25
MOQ_POINTS = 20
LOCATION_POINTS = 10
CERTIFICATION_POINTS = 20

DEFAULT_RANKING_WEIGHTS = {
    "profile_score": 0.4,
    "match_score": 0.4,
    "certification_count": 0.1,
    "services_count": 0.1,
}


def _norm(value: Any) -> str:
    return str(value).strip().lower() if value is not None else ""


def _services(manufacturer: Dict[str, Any]) -> Set[str]:
    return {_norm(s) for s in manufacturer.get("services_offered") or [] if _norm(s)}


def _certifications(manufacturer: Dict[str, Any]) -> Set[str]:
    names = set()
    for cert in manufacturer.get("certifications") or []:
        name = cert.get("name") if isinstance(cert, dict) else cert
        if _norm(name):
            names.add(_norm(name))
    return names


def _country(manufacturer: Dict[str, Any]) -> str:
    return _norm((manufacturer.get("headquarters") or {}).get("country"))


def _city(manufacturer: Dict[str, Any]) -> str:
    return _norm((manufacturer.get("headquarters") or {}).get("city"))


def jaccard(a: Set[str], b: Set[str]) -> float:
    union = a | b
    return len(a & b) / len(union) if union else 0.0


def moq_similarity(a: Optional[float], b: Optional[float]) -> float:
    if not a or not b or a <= 0 or b <= 0:
        return 0.0
    return min(a, b) / max(a, b)


def compare_manufacturers(a: Dict[str, Any], b: Dict[str, Any]) -> int:
    """Similarity of two manufacturers, 0-100. Factors without data on both sides score 0."""
    score = 0.0

    if _norm(a.get("industry")) and _norm(a.get("industry")) == _norm(b.get("industry")):
        score += INDUSTRY_POINTS
    score += jaccard(_services(a), _services(b)) * SERVICES_POINTS
    score += moq_similarity(a.get("moq"), b.get("moq")) * MOQ_POINTS
    if _country(a) and _country(a) == _country(b):
        score += LOCATION_POINTS
    score += jaccard(_certifications(a), _certifications(b)) * CERTIFICATION_POINTS

    return min(round(score), 100)


def _match_reasons(source: Dict[str, Any], candidate: Dict[str, Any]) -> List[str]:
    reasons = []
    if _norm(source.get("industry")) and _norm(source.get("industry")) == _norm(candidate.get("industry")):
        reasons.append(f"Same industry: {candidate.get('industry')}")
    shared_services = _services(source) & _services(candidate)
    if shared_services:
        reasons.append(f"Shared services: {', '.join(sorted(shared_services))}")
    if moq_similarity(source.get("moq"), candidate.get("moq")) >= 0.8:
        reasons.append("Similar minimum order quantity")
    if _country(source) and _country(source) == _country(candidate):
        reasons.append(f"Same country: {(candidate.get('headquarters') or {}).get('country')}")
    shared_certs = _certifications(source) & _certifications(candidate)
    if shared_certs:
        reasons.append(f"Shared certifications: {', '.join(sorted(shared_certs))}")
    return reasons


def _differences(source: Dict[str, Any], candidate: Dict[str, Any]) -> List[str]:
    differences = []
    if _norm(source.get("industry")) != _norm(candidate.get("industry")):
        differences.append(f"Industry: {source.get('industry')} vs {candidate.get('industry')}")
    extra_services = _services(candidate) - _services(source)
    if extra_services:
        differences.append(f"Additional services: {', '.join(sorted(extra_services))}")
    if source.get("moq") and candidate.get("moq") and source.get("moq") != candidate.get("moq"):
        differences.append(f"MOQ: {source.get('moq')} vs {candidate.get('moq')}")
    if _country(source) != _country(candidate):
        differences.append(
            f"Location: {(source.get('headquarters') or {}).get('country')} vs "
            f"{(candidate.get('headquarters') or {}).get('country')}"
        )
    return differences


def _manufacturer_id(manufacturer: Dict[str, Any]) -> Optional[str]:
    value = manufacturer.get("_id") or manufacturer.get("id")
    return str(value) if value is not None else None


def find_similar_manufacturers(
    source: Dict[str, Any], candidates: Iterable[Dict[str, Any]], threshold: int = 50
) -> List[Dict[str, Any]]:
    source_id = _manufacturer_id(source)
    results = []
    for candidate in candidates:
        candidate_id = _manufacturer_id(candidate)
        if source_id is not None and candidate_id == source_id:
            continue
        score = compare_manufacturers(source, candidate)
        if score < threshold:
            continue
        results.append(
            {
                "manufacturer_id": candidate_id,
                "name": candidate.get("name"),
                "match_score": score,
                "match_reasons": _match_reasons(source, candidate),
                "differences": _differences(source, candidate),
            }
        )
    results.sort(key=lambda r: r["match_score"], reverse=True)
    return results


def match_against_criteria(manufacturer: Dict[str, Any], criteria: Dict[str, Any]) -> int:
    """
    Fit of a manufacturer to search criteria, 0-100.

    Supported keys: `industry`, `services`, `moq_range` (`min`/`max`), `location`
    (country or city) and `certifications`. Each supplied criterion weighs the same.
    """
    scores = []

    if criteria.get("industry"):
        scores.append(1.0 if _norm(manufacturer.get("industry")) == _norm(criteria["industry"]) else 0.0)

    if criteria.get("services"):
        wanted = {_norm(s) for s in criteria["services"]}
        scores.append(len(wanted & _services(manufacturer)) / len(wanted))

    moq_range = criteria.get("moq_range")
    if moq_range:
        moq = manufacturer.get("moq")
        low = moq_range.get("min")
        high = moq_range.get("max")
        in_range = (
            moq is not None
            and (low is None or moq >= low)
            and (high is None or moq <= high)
        )
        scores.append(1.0 if in_range else 0.0)

    if criteria.get("location"):
        location = _norm(criteria["location"])
        scores.append(1.0 if location in (_country(manufacturer), _city(manufacturer)) else 0.0)

    if criteria.get("certifications"):
        wanted = {_norm(c) for c in criteria["certifications"]}
        scores.append(len(wanted & _certifications(manufacturer)) / len(wanted))

    if not scores:
        return 0
    return round(sum(scores) / len(scores) * 100)


def rank_manufacturers(
    manufacturers: Iterable[Dict[str, Any]], weights: Optional[Dict[str, float]] = None
) -> List[Dict[str, Any]]:
    """Attach `ranking_score` to each manufacturer and sort best first."""
    weights = weights or DEFAULT_RANKING_WEIGHTS
    ranked = []
    for manufacturer in manufacturers:
        components = {
            "profile_score": manufacturer.get("profile_score") or 0,
            "match_score": manufacturer.get("match_score") or 0,
            "certification_count": min(len(manufacturer.get("certifications") or []), 10) * 10,
            "services_count": min(len(manufacturer.get("services_offered") or []), 10) * 10,
        }
        ranking_score = sum(components[key] * weights.get(key, 0) for key in components)
        ranked.append({**manufacturer, "ranking_score": round(ranking_score, 2)})
    ranked.sort(key=lambda m: m["ranking_score"], reverse=True)
    return ranked
