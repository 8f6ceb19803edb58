"""Publish-platform policy rule catalog, one rule list per policy stage."""

from __future__ import annotations

from newsreel.models.policy import PolicyRule, PolicyStage

_S = PolicyStage.SCRIPT_LIGHT
_A = PolicyStage.ASSET_STRONG

SCRIPT_LIGHT_RULES = [
    PolicyRule(
        code="MISINFO_SENSITIVE_CLAIMS", stage=_S,
        label="Sensitive misinformation claims",
        description="Unsupported election, medical or other high-harm factual claims.",
        block_criteria="Claim breaks election or medical misinformation policy, or gives dangerous false guidance.",
        review_criteria="Sensitive claim without strong sourcing, or stated with too much certainty.",
        warn_criteria="Needs softer uncertainty framing but asserts nothing prohibited.",
    ),
    PolicyRule(
        code="DECEPTIVE_METADATA_COPY", stage=_S,
        label="Deceptive title/description copy",
        description="Text that claims more than the source articles support.",
        block_criteria="Title or description fabricates facts or intent.",
        review_criteria="Exaggeration strong enough to mislead viewers.",
        warn_criteria="Minor clickbait phrasing to tone down.",
    ),
    PolicyRule(
        code="HATE_HARASSMENT_TEXT", stage=_S,
        label="Hate or harassment language",
        description="Abuse aimed at protected groups or individuals.",
        block_criteria="Direct hate speech, dehumanization or targeted harassment.",
        review_criteria="Ambiguous hostile framing around protected characteristics.",
        warn_criteria="Aggressive tone likely to draw moderation.",
    ),
    PolicyRule(
        code="HARMFUL_DANGEROUS_TEXT", stage=_S,
        label="Harmful or dangerous language",
        description="Instructions for, or encouragement of, dangerous acts.",
        block_criteria="Harmful instructions, encouragement or normalized self-harm.",
        review_criteria="Possibly unsafe framing of a dangerous topic.",
        warn_criteria="Needs safer wording or a context disclaimer.",
    ),
    PolicyRule(
        code="INAUTHENTIC_REPETITION_TEXT", stage=_S,
        label="Inauthentic repetitive structure",
        description="Templated narration with little original information.",
        block_criteria="Extremely repetitive output with minimal informational value.",
        review_criteria="Heavy template reuse with low novelty.",
        warn_criteria="Moderate template reuse.",
    ),
]

ASSET_STRONG_RULES = [
    PolicyRule(
        code="VISUAL_MISLEADING_THUMBNAIL", stage=_A,
        label="Misleading thumbnail/image claims",
        description="Thumbnail or visuals that misrepresent the script or articles.",
        block_criteria="Thumbnail or key image depicts fabricated core events.",
        review_criteria="Visuals materially overstate or distort the facts.",
        warn_criteria="Minor sensational embellishment.",
    ),
    PolicyRule(
        code="VISUAL_BRANDING_CTA", stage=_A,
        label="Branding/CTA artifacts in generated images",
        description="Subscribe buttons, social icons or channel branding inside generated visuals.",
        block_criteria="Deceptive overlays or manipulative UI mimicry.",
        review_criteria="Branding or CTA artifacts repeated across assets.",
        warn_criteria="A single branding or CTA artifact needing regeneration.",
    ),
    PolicyRule(
        code="VISUAL_HARMFUL_GRAPHIC", stage=_A,
        label="Graphic or harmful visuals",
        description="Graphic violence, self-harm or dangerous depictions.",
        block_criteria="Graphic violence, explicit self-harm or dangerous instructional imagery.",
        review_criteria="Possibly distressing content.",
        warn_criteria="High intensity that is not overtly graphic.",
    ),
    PolicyRule(
        code="VISUAL_HATE_HARASSMENT", stage=_A,
        label="Hate or harassment visuals",
        description="Hateful symbols or abusive targeting in visuals.",
        block_criteria="Explicit hateful or harassing visual targeting.",
        review_criteria="Ambiguous but concerning hostile framing.",
        warn_criteria="Borderline aggressive cues.",
    ),
    PolicyRule(
        code="SYNTHETIC_CONTEXT_INTEGRITY", stage=_A,
        label="Synthetic media context integrity",
        description="Synthetic visuals passed off as real footage.",
        block_criteria="Synthetic media used to mislead about real events.",
        review_criteria="Context may mislead without stronger framing.",
        warn_criteria="Minor context clarity issues.",
    ),
    PolicyRule(
        code="INAUTHENTIC_REPETITION_VISUAL", stage=_A,
        label="Inauthentic repetitive visuals",
        description="Low-originality visual template reuse.",
        block_criteria="Near-duplicate visual set with negligible differentiation.",
        review_criteria="Heavy template reuse across the set.",
        warn_criteria="Moderate repetition.",
    ),
]

POLICY_RULES: dict[PolicyStage, list[PolicyRule]] = {
    PolicyStage.SCRIPT_LIGHT: SCRIPT_LIGHT_RULES,
    PolicyStage.ASSET_STRONG: ASSET_STRONG_RULES,
}


def rules_for(stage: PolicyStage) -> list[PolicyRule]:
    return POLICY_RULES[stage]


def format_rules_for_prompt(stage: PolicyStage) -> str:
    return "\n".join(
        f"- {r.code} ({r.label})\n"
        f"  - Description: {r.description}\n"
        f"  - BLOCK when: {r.block_criteria}\n"
        f"  - REVIEW when: {r.review_criteria}\n"
        f"  - WARN when: {r.warn_criteria}"
        for r in POLICY_RULES[stage]
    )
