"""
# Brand Completeness Calculator

Scores how complete a brand's profile, settings and integrations are.

Each area has a `CompletenessConfig` of field groups with weights:

| Group | Counted when |
|-------|--------------|
| `required` | always |
| `optional` | always |
| `premium` | plan is `premium` or `enterprise` |
| `enterprise` | plan is `enterprise` |
| `bonus` | always |

```
score = round(sum(completed / total * weight) / sum(weights) * 100), capped at 100
```

A field is complete when its dot-path value is a non-blank string, a non-empty
list or dict, `True`, or a number greater than zero.

The overall score weights the three areas 50 / 35 / 15.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from brandlink.managers.logging_manager import get_logger
from brandlink.utils.documents import get_path

logger = get_logger(prefix="[Completeness]")

PREMIUM_PLANS = ("premium", "enterprise")
PRIORITY_FIELDS = ("business_name", "email", "industry", "description", "theme_color", "logo_url")
AREA_WEIGHTS = {"profile": 50, "settings": 35, "integrations": 15}

FIELD_ACTIONS = {
    "business_name": "Add your business name",
    "email": "Verify your email address",
    "industry": "Select your industry",
    "description": "Write a compelling business description",
    "contact_email": "Add a contact email",
    "profile_picture_url": "Upload a professional profile picture",
    "logo_url": "Upload your company logo",
    "theme_color": "Choose your brand theme color",
    "banner_images": "Add banner images to showcase your brand",
    "custom_css": "Customize your brand styling",
    "subdomain": "Set up a custom subdomain",
    "custom_domain": "Configure a custom domain",
    "certificate_wallet": "Connect your Web3 wallet",
    "social_urls": "Add your social media links",
    "certifications": "Upload business certifications",
    "website": "Add your website URL",
    "headquarters": "Add your business location",
}


@dataclass
class CompletenessConfig:
    required_fields: List[str]
    optional_fields: List[str]
    premium_fields: List[str] = field(default_factory=list)
    enterprise_fields: List[str] = field(default_factory=list)
    bonus_fields: List[str] = field(default_factory=list)
    weights: Dict[str, float] = field(
        default_factory=lambda: {"required": 70, "optional": 25, "premium": 3, "enterprise": 1, "bonus": 1}
    )


def is_field_completed(data: Dict[str, Any], path: str) -> bool:
    value = get_path(data or {}, path)
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    if isinstance(value, (list, tuple, dict)):
        return len(value) > 0
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value > 0
    return True


def _field_group(data: Dict[str, Any], fields: List[str]) -> Dict[str, Any]:
    if not fields:
        return {"completed": 0, "total": 0, "score": 0, "missing": []}
    missing = [f for f in fields if not is_field_completed(data, f)]
    completed = len(fields) - len(missing)
    return {
        "completed": completed,
        "total": len(fields),
        "score": round(completed / len(fields) * 100),
        "missing": missing,
    }


def _ratio(group: Dict[str, Any]) -> float:
    # An empty group contributes nothing but its weight still counts.
    return group["completed"] / group["total"] if group["total"] else 0.0


def profile_config(plan: str = "foundation") -> CompletenessConfig:
    config = CompletenessConfig(
        required_fields=["business_name", "email", "industry", "description", "contact_email"],
        optional_fields=[
            "profile_picture_url",
            "social_urls",
            "headquarters",
            "business_information",
            "certifications",
            "website",
            "phone_number",
        ],
        bonus_fields=[
            "verified_business_documents",
            "partnership_count",
            "certificates_issued",
            "community_engagement",
        ],
        weights={"required": 70, "optional": 25, "premium": 3, "enterprise": 2, "bonus": 5},
    )
    if plan in PREMIUM_PLANS:
        config.premium_fields = ["wallet_address", "certificate_wallet", "custom_domain"]
    if plan == "enterprise":
        config.enterprise_fields = ["api_key_settings", "whitelabel_config", "dedicated_support"]
    return config


def settings_config(plan: str = "foundation") -> CompletenessConfig:
    config = CompletenessConfig(
        required_fields=["theme_color", "logo_url"],
        optional_fields=["banner_images", "custom_css", "subdomain", "social_media_links", "brand_guidelines"],
        bonus_fields=["ssl_certificate", "domain_verification", "brand_consistency_score", "design_quality_score"],
        weights={"required": 60, "optional": 30, "premium": 8, "enterprise": 2, "bonus": 5},
    )
    if plan in PREMIUM_PLANS:
        config.premium_fields = ["custom_domain", "certificate_wallet", "advanced_branding"]
    if plan == "enterprise":
        config.enterprise_fields = ["white_label", "custom_branding", "dedicated_support"]
    return config


def integrations_config(plan: str = "foundation") -> CompletenessConfig:
    config = CompletenessConfig(
        required_fields=[],
        optional_fields=["webhook_endpoints", "api_documentation"],
        bonus_fields=["automation_workflows", "real_time_sync_enabled", "advanced_webhooks"],
        weights={"required": 0, "optional": 40, "premium": 40, "enterprise": 15, "bonus": 5},
    )
    if plan in PREMIUM_PLANS:
        config.premium_fields = ["shopify_integration", "woocommerce_integration", "wix_integration", "zapier_integration"]
    if plan == "enterprise":
        config.enterprise_fields = ["custom_api_integrations", "slack_integration", "enterprise_webhooks"]
    return config


def _recommendations(breakdown: Dict[str, Dict[str, Any]], plan: str) -> List[str]:
    recommendations = []
    required, optional = breakdown["required"], breakdown["optional"]

    if required["missing"]:
        recommendations.append(f"Complete {len(required['missing'])} required fields to boost your profile")
        priority = [f for f in required["missing"] if f in PRIORITY_FIELDS]
        if priority:
            recommendations.append(f"Priority: Add {', '.join(priority[:3])}")
    elif optional["missing"]:
        recommendations.append(
            f"Add {min(3, len(optional['missing']))} optional fields to enhance your profile"
        )

    if breakdown.get("premium", {}).get("missing"):
        recommendations.append(f"Utilize premium features: {', '.join(breakdown['premium']['missing'][:2])}")
    if breakdown.get("enterprise", {}).get("missing"):
        recommendations.append(f"Configure enterprise features: {', '.join(breakdown['enterprise']['missing'][:2])}")

    if required["score"] < 50:
        recommendations.append("Focus on completing basic profile information first")
    elif required["score"] < 80:
        recommendations.append("Add optional information to improve discoverability")
    else:
        recommendations.append("Great profile! Consider exploring advanced features")

    return recommendations[:6]


def _next_steps(breakdown: Dict[str, Dict[str, Any]], plan: str) -> List[str]:
    steps = []
    required, optional = breakdown["required"], breakdown["optional"]

    if required["missing"]:
        steps.extend(FIELD_ACTIONS.get(f, f"Complete {f}") for f in required["missing"][:3])
    elif optional["missing"]:
        steps.extend(FIELD_ACTIONS.get(f, f"Complete {f}") for f in optional["missing"][:2])

    if plan in PREMIUM_PLANS and breakdown.get("premium", {}).get("missing"):
        steps.append(f"Set up {breakdown['premium']['missing'][0]} to unlock premium features")

    if not required["missing"] and len(optional["missing"]) <= 2:
        steps.extend(
            [
                "Explore integration options to connect your tools",
                "Review and update your brand settings",
                "Consider upgrading your plan for more features",
            ]
        )
    return steps[:5]


def calculate_completeness(
    data: Optional[Dict[str, Any]], config: CompletenessConfig, plan: str = "foundation"
) -> Dict[str, Any]:
    """Score `data` against `config`. Plan gating is applied when the config is built."""
    data = data or {}
    weights = config.weights
    breakdown: Dict[str, Dict[str, Any]] = {
        "required": _field_group(data, config.required_fields),
        "optional": _field_group(data, config.optional_fields),
    }
    total_score = _ratio(breakdown["required"]) * weights["required"] + _ratio(breakdown["optional"]) * weights["optional"]
    total_weight = weights["required"] + weights["optional"]

    for group in ("premium", "enterprise"):
        fields = getattr(config, f"{group}_fields")
        if fields:
            breakdown[group] = _field_group(data, fields)
            total_score += _ratio(breakdown[group]) * weights[group]
            total_weight += weights[group]

    if config.bonus_fields:
        bonus = _field_group(data, config.bonus_fields)
        bonus["available"] = list(config.bonus_fields)
        del bonus["missing"]
        breakdown["bonus"] = bonus
        total_score += min(_ratio(bonus) * weights["bonus"], weights["bonus"])
        total_weight += weights["bonus"]

    score = min(round(total_score / total_weight * 100), 100) if total_weight else 0
    return {
        "score": score,
        "breakdown": breakdown,
        "missing_required": breakdown["required"]["missing"],
        "recommendations": _recommendations(breakdown, plan),
        "next_steps": _next_steps(breakdown, plan),
    }


class CompletenessCalculator:
    def profile(self, profile: Dict[str, Any], plan: str = "foundation") -> Dict[str, Any]:
        return calculate_completeness(profile, profile_config(plan), plan)

    def settings(self, settings: Dict[str, Any], plan: str = "foundation") -> Dict[str, Any]:
        return calculate_completeness(settings, settings_config(plan), plan)

    def integrations(self, integrations: Dict[str, Any], plan: str = "foundation") -> Dict[str, Any]:
        return calculate_completeness(integrations, integrations_config(plan), plan)

    def overall(
        self,
        profile: Dict[str, Any],
        settings: Dict[str, Any],
        integrations: Dict[str, Any],
        plan: str = "foundation",
    ) -> Dict[str, Any]:
        areas = {
            "profile": self.profile(profile, plan),
            "settings": self.settings(settings, plan),
            "integrations": self.integrations(integrations, plan),
        }
        weighted = sum(areas[name]["score"] * weight for name, weight in AREA_WEIGHTS.items())
        score = round(weighted / sum(AREA_WEIGHTS.values()))

        recommendations = [r for result in areas.values() for r in result["recommendations"]][:10]
        next_steps = [s for result in areas.values() for s in result["next_steps"]][:8]
        missing_required = areas["profile"]["missing_required"] + areas["settings"]["missing_required"]

        logger.debug("Overall completeness %d for plan %s", score, plan)
        return {
            "score": score,
            "areas": {name: result["score"] for name, result in areas.items()},
            "breakdown": {name: result["breakdown"] for name, result in areas.items()},
            "missing_required": missing_required,
            "recommendations": recommendations,
            "next_steps": next_steps,
        }


completeness_calculator = CompletenessCalculator()
